"""Consumers that drive a reader through its pull contract.

- [download_to_file][obspec_stream.sinks.download_to_file]: write to a local file
- [TarStreamWriter][obspec_stream.sinks.TarStreamWriter]: append to a tar archive
- [copy_object][obspec_stream.sinks.copy_object]: re-upload to another store in
  fixed-size parts
"""

from obspec_stream.sinks._copy import CopyResult, copy_object, iter_parts
from obspec_stream.sinks._file import download_to_file
from obspec_stream.sinks._tar import TarStreamWriter

__all__ = [
    "CopyResult",
    "TarStreamWriter",
    "copy_object",
    "download_to_file",
    "iter_parts",
]
