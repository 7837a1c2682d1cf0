"""File upload widget.

One widget owns one asset slot (a cover image, a trailer video, a university
card). It walks an explicit state machine:

    IDLE -> VALIDATING -> UPLOADING(progress) -> SUCCEEDED(path) | FAILED(reason)

and reports the resulting asset path through a single channel,
``on_file_change``. Every failure ends up as a toast, never as an exception
raised into the form.
"""
import logging
import math
from enum import Enum
from typing import Callable, Optional

from campus_library.config import UploadConfig
from campus_library.models import SelectedFile, UploadResult
from campus_library.notifications import Notifier
from campus_library.services.imagekit import (
    AuthenticationError,
    ImageKitTransport,
    UploadAuthenticator,
    UploadError,
)

logger = logging.getLogger(__name__)

ONE_MB = 1024 * 1024
TWENTY_MB = 20 * ONE_MB
FIFTY_MB = 50 * ONE_MB


class UploadKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class UploadState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def size_limit(kind: UploadKind, config: Optional[UploadConfig] = None) -> int:
    if kind is UploadKind.IMAGE:
        return config.max_image_size if config else TWENTY_MB
    return config.max_video_size if config else FIFTY_MB


def accepts(accept: Optional[str], content_type: str) -> bool:
    """Browser-style ``accept`` check against the reported MIME type only."""
    if not accept:
        return True
    content_type = (content_type or "").lower()
    for pattern in (p.strip().lower() for p in accept.split(",")):
        if not pattern:
            continue
        if pattern.endswith("/*") and content_type.startswith(pattern[:-1]):
            return True
        if pattern == content_type:
            return True
    return False


def percent(loaded: int, total: int) -> int:
    """Rounded (half up) percentage, clamped to 0..100."""
    if total <= 0:
        return 0
    value = math.floor(loaded / total * 100 + 0.5)
    return max(0, min(100, value))


class FileUploadWidget:
    def __init__(self, kind: UploadKind, config: UploadConfig, on_file_change: Callable[[str], None],
                 notifier: Optional[Notifier] = None, authenticator: Optional[UploadAuthenticator] = None,
                 transport: Optional[ImageKitTransport] = None, folder: str = "",
                 accept: Optional[str] = None, placeholder: str = "", value: Optional[str] = None):
        self.kind = UploadKind(kind)
        self.config = config
        self.on_file_change = on_file_change
        self.notifier = notifier or Notifier()
        self.authenticator = authenticator or UploadAuthenticator(config)
        self.transport = transport or ImageKitTransport(config)
        self.folder = folder
        self.accept = accept
        self.placeholder = placeholder

        self.state = UploadState.SUCCEEDED if value else UploadState.IDLE
        self.file_path: Optional[str] = value
        self.result: Optional[UploadResult] = None
        self.progress = 0
        self.error: Optional[str] = None
        self._in_flight = False

    # ------------------------- View helpers ------------------------- #
    @property
    def limit(self) -> int:
        return size_limit(self.kind, self.config)

    @property
    def uploading(self) -> bool:
        return self._in_flight

    @property
    def show_progress(self) -> bool:
        return 0 < self.progress < 100

    @property
    def label(self) -> str:
        return self.file_path or self.placeholder

    # ------------------------- State transitions ------------------------- #
    def select(self, file: SelectedFile) -> None:
        """A new file was picked; forget the previous attempt."""
        logger.debug("Selected %s (%d bytes) for %s upload", file.name, file.size, self.kind.value)
        self.state = UploadState.IDLE
        self.progress = 0
        self.error = None

    def validate(self, file: SelectedFile) -> bool:
        self.state = UploadState.VALIDATING
        if not accepts(self.accept, file.content_type):
            self.notifier.error("Invalid file type.", f"Please upload a {self.kind.value} file.")
            self.state = UploadState.IDLE
            return False
        if file.size > self.limit:
            self.notifier.error(
                "File size too large.",
                f"Please upload a file smaller than {self.limit // ONE_MB}MB.",
            )
            self.state = UploadState.IDLE
            return False
        return True

    def start_upload(self) -> None:
        self.progress = 0
        self.state = UploadState.UPLOADING

    def report_progress(self, loaded: int, total: int) -> None:
        if self.state is not UploadState.UPLOADING:
            return
        # Progress never moves backwards within one upload
        self.progress = max(self.progress, percent(loaded, total))

    def succeed(self, result: UploadResult) -> None:
        self.result = result
        self.file_path = result.file_path
        self.progress = 100
        self.state = UploadState.SUCCEEDED
        self.on_file_change(result.file_path)
        self.notifier.show(f"{self.kind.value} uploaded successfully.", f"{result.file_path} uploaded!")

    def fail(self, reason: str) -> None:
        self.error = reason
        self.state = UploadState.FAILED
        self.notifier.error(
            f"{self.kind.value} uploaded failed.",
            f"Your {self.kind.value} could not be uploaded! Please try again.",
        )

    # ------------------------- Full flow ------------------------- #
    async def upload(self, file: SelectedFile) -> UploadState:
        """Validate, sign and upload ``file``; returns the state it ends in."""
        if self._in_flight:
            logger.warning("Ignoring %s while another %s upload is in flight", file.name, self.kind.value)
            return self.state

        self.select(file)
        if not self.validate(file):
            return self.state

        self._in_flight = True
        self.start_upload()
        try:
            auth = await self.authenticator()
            result = await self.transport.upload(file, auth, self.folder, self.report_progress)
        except (AuthenticationError, UploadError) as exc:
            logger.error("%s upload failed: %s", self.kind.value, exc)
            self.fail(str(exc))
        except Exception as exc:
            logger.exception("Unexpected error while uploading %s", file.name)
            self.fail(str(exc))
        else:
            self.succeed(result)
        finally:
            self._in_flight = False
        return self.state
