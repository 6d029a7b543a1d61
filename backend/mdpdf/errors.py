from __future__ import annotations


class InputError(RuntimeError):
    pass


class RenderError(RuntimeError):
    pass


class RenderTimeout(RenderError):
    pass


class RendererUnavailable(RenderError):
    pass


class LayoutError(RenderError):
    pass


class EncodingFailure(RenderError):
    pass
