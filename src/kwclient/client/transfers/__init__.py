from kwclient.client.transfers.download import ResumableDownloader
from kwclient.client.transfers.upload import ChunkedUploader, MultipartChunk

__all__ = [
    "ChunkedUploader",
    "MultipartChunk",
    "ResumableDownloader",
]
