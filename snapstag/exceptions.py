"""Exception classes for snapstag."""


class SnapstagError(Exception):
    """Base exception for all snapstag errors."""

    pass


class BufferGeometryError(SnapstagError, ValueError):
    """Raised when a raw buffer does not match the geometry it is viewed with."""

    pass


class PixelDecodeError(SnapstagError, ValueError):
    """Raised when a pixel is decoded from fewer than four channel bytes."""

    pass


class ContextAllocationError(SnapstagError):
    """Raised when a bitmap context can not be allocated."""

    pass


class ImageFinalizeError(SnapstagError):
    """Raised when a bitmap context can not be turned into an image."""

    pass


class PageRenderError(SnapstagError):
    """Raised when the image of a failed PDF page render is requested."""

    pass


class ImageWriteError(SnapstagError):
    """Base exception for failures while writing an image to disk."""

    def __init__(self, target, message: str):
        super().__init__(f"{message}: {target}")
        self.target = target


class DestinationCreateError(ImageWriteError):
    """Raised when the output file can not be created or opened."""

    def __init__(self, target):
        super().__init__(target, "Failed to create output destination")


class DestinationFinalizeError(ImageWriteError):
    """Raised when encoding or flushing the output file fails."""

    def __init__(self, target):
        super().__init__(target, "Failed to finalize output destination")
