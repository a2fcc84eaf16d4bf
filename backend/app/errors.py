class PreviewServiceError(Exception):
    """Base class for every error this service maps to an HTTP response."""


class MissingParameter(PreviewServiceError):
    pass


class InvalidURL(PreviewServiceError):
    pass


class CaptureError(PreviewServiceError):
    """Screenshot capture failed. Surfaces as a 500."""


class NavigationTimeout(CaptureError):
    pass


class LaunchFailure(CaptureError):
    pass


class PoolTimeout(CaptureError):
    """No browser slot became free within the acquire timeout."""


class UpstreamFetchFailure(PreviewServiceError):
    pass


class OriginNotAllowed(PreviewServiceError):
    pass
