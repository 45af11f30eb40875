class TileViewerException(Exception):
    """Base exception for tile viewer"""
    pass


class ConfigurationError(TileViewerException):
    """Configuration related errors"""
    pass


class ValidationError(TileViewerException):
    """Validation related errors"""
    pass


class StorageError(TileViewerException):
    """Settings storage related errors"""
    pass


class UpstreamError(TileViewerException):
    """Upstream tile server errors"""
    pass


class SettingsFormatError(TileViewerException):
    """Settings API returned something other than JSON"""
    pass
