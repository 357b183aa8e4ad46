class TileDownloaderException(Exception):
    """Base exception for the tile subsystem"""
    pass


class ConfigurationError(TileDownloaderException):
    """Configuration related errors"""
    pass


class ValidationError(TileDownloaderException):
    """Validation related errors"""
    pass


class ArchiveOpenError(TileDownloaderException):
    """Archive file is missing or is not a readable MBTiles database"""
    pass


class RegionNotFoundError(TileDownloaderException):
    """Requested region or tile set is unknown"""
    pass


class DownloadError(TileDownloaderException):
    """Download related errors"""
    pass


class NetworkError(DownloadError):
    """Remote server unreachable or returned an error status"""
    pass


class StorageError(TileDownloaderException):
    """Local disk write, move or delete failed"""
    pass


class FetchAbortedError(DownloadError):
    """A tile failed during a bulk fetch; the whole fetch was aborted"""

    def __init__(self, message: str, tile=None):
        super().__init__(message)
        self.tile = tile


class FetchCancelledError(FetchAbortedError):
    """Bulk fetch stopped because cancellation was requested"""
    pass
