import base64
import hashlib
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from itertools import islice
from pathlib import Path
from typing import List, Optional

import requests

from blimp.logger import get_console
from blimp.src.appstore.models import (
    UploadChecksums,
    UploadConfig,
    UploadFileDescriptor,
    UploadOperation,
    UploadPhase,
    UploadStatus,
)
from blimp.src.appstore.services import AppQueryService, BuildUploadService
from blimp.src.errors import (
    CancelledError,
    ChunkUploadError,
    InvalidFileError,
    TransporterError,
    UploadFailedError,
    UploadTimedOutError,
)
from blimp.src.transfers.retry import Sleeper, backoff_delay, is_retryable_status, pause

console = get_console()

# Upper bound for a single read while assembling a chunk
READ_BLOCK_SIZE = 8 * 1024 * 1024


def read_chunk(file_path: Path, offset: int, length: int) -> bytes:
    """Read exactly `length` bytes starting at `offset`"""
    buffer = bytearray()
    with open(file_path, "rb") as f:
        f.seek(offset)
        remaining = length
        while remaining > 0:
            data = f.read(min(remaining, READ_BLOCK_SIZE))
            if not data:
                break
            buffer.extend(data)
            remaining -= len(data)

    if len(buffer) != length:
        raise InvalidFileError(
            f"Failed to read expected number of bytes for chunk starting at offset {offset}"
        )
    return bytes(buffer)


def compute_checksums(file_path: Path) -> UploadChecksums:
    """Stream the file once and return base64 sha256/md5 digests"""
    sha256 = hashlib.sha256()
    md5 = hashlib.md5()
    with open(file_path, "rb") as f:
        while True:
            block = f.read(READ_BLOCK_SIZE)
            if not block:
                break
            sha256.update(block)
            md5.update(block)

    return UploadChecksums(
        sha256=base64.b64encode(sha256.digest()).decode("ascii"),
        md5=base64.b64encode(md5.digest()).decode("ascii"),
    )


class AppStoreConnectUploader:
    """Uploads a build through the App Store Connect build upload API.

    The server dictates the byte ranges ("operations"). Each one is sent with its
    own method, URL and headers. At most `max_concurrent_chunk_uploads` chunks
    are in flight: K are started up front and one more is started every time a
    chunk finishes. Every chunk retries on transport errors, 429 and 5xx with
    exponential backoff, with the attempt counter living on the worker's stack.
    """

    def __init__(
        self,
        upload_service: BuildUploadService,
        app_service: AppQueryService,
        session: Optional[requests.Session] = None,
        max_concurrent_chunk_uploads: int = 4,
        max_upload_retries: int = 3,
        retry_base_delay: float = 0.5,
        poll_interval: Optional[float] = 30,
        max_poll_attempts: int = 60,
        request_timeout: float = 300,
        include_checksums: bool = True,
        sleep: Optional[Sleeper] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.upload_service = upload_service
        self.app_service = app_service
        self.session = session or requests.Session()
        self.max_concurrent_chunk_uploads = max(1, max_concurrent_chunk_uploads)
        self.max_upload_retries = max(1, max_upload_retries)
        self.retry_base_delay = retry_base_delay
        self.poll_interval = poll_interval
        self.max_poll_attempts = max(1, max_poll_attempts)
        self.request_timeout = request_timeout
        self.include_checksums = include_checksums
        self.sleep = sleep
        self.cancel_event = cancel_event

    def upload(self, config: UploadConfig, verbose: bool = False) -> UploadStatus:
        """Upload the file described by config and wait for App Store Connect to accept it"""
        file_path = Path(config.file_path).expanduser().resolve()
        file_size = self._validate_file(file_path)

        console.print(
            f"[blue]Preparing build upload for {config.bundle_id} "
            f"version {config.app_version} ({config.build_number})"
        )

        app_id = self.app_service.get_app_id(config.bundle_id)
        if file_path.suffix.lower() == ".pkg":
            descriptor = UploadFileDescriptor.pkg(file_path.name, file_size)
        else:
            descriptor = UploadFileDescriptor.ipa(file_path.name, file_size)

        try:
            plan = self.upload_service.create_build_upload(
                app_id=app_id,
                app_version=config.app_version,
                build_number=config.build_number,
                platform=config.platform,
                file=descriptor,
            )
        except Exception as e:
            raise TransporterError(e) from e

        for warning in plan.status.warnings:
            console.print(f"[yellow]Upload plan warning: {warning}")

        if plan.status.phase == UploadPhase.FAILED:
            console.print(
                f"[red]Upload was rejected before sending any data: "
                f"{' | '.join(plan.status.errors)}"
            )
            raise TransporterError(UploadFailedError(plan.status.errors))

        checksums = None
        if self.include_checksums:
            checksums = compute_checksums(file_path)

        try:
            self._upload_binary(plan.operations, file_path, verbose)
        except CancelledError:
            console.print("[yellow]Upload cancelled")
            raise
        except Exception as e:
            console.print(f"[red]Uploading chunks failed:[/] {e}")
            raise TransporterError(e) from e

        console.print("[blue]Notifying App Store Connect that upload is complete...")
        try:
            self.upload_service.mark_upload_complete(plan.upload_file_id, checksums)
        except Exception as e:
            raise TransporterError(e) from e

        try:
            final_status = self._poll_upload_completion(plan.upload_id, verbose)
        except UploadTimedOutError as e:
            raise TransporterError(e) from e

        if final_status.phase == UploadPhase.FAILED:
            for error in final_status.errors:
                console.print(f"[red]{error}")
            raise TransporterError(UploadFailedError(final_status.errors))

        if final_status.phase == UploadPhase.COMPLETE:
            for warning in final_status.warnings:
                console.print(f"[yellow]Upload warning: {warning}")
            console.print("[green]Build uploaded successfully via App Store Connect API")
        else:
            console.print(
                f"[yellow]Upload finished with state {final_status.phase.value}, "
                "status polling is disabled"
            )
        return final_status

    def _validate_file(self, file_path: Path) -> int:
        if not file_path.is_file():
            raise TransporterError(InvalidFileError(f"IPA not found at path {file_path}"))
        try:
            with open(file_path, "rb"):
                pass
            return file_path.stat().st_size
        except OSError as e:
            raise TransporterError(
                InvalidFileError(f"Unable to read IPA at {file_path}: {e}")
            ) from e

    def _upload_binary(
        self, operations: List[UploadOperation], file_path: Path, verbose: bool
    ) -> None:
        if not operations:
            console.print("[yellow]No upload operations returned, skipping binary upload")
            return

        pending = iter(sorted(operations, key=lambda op: op.offset))
        abort = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent_chunk_uploads,
            thread_name_prefix="blimp-chunk",
        )
        try:
            in_flight = {
                executor.submit(self._upload_operation, operation, file_path, verbose, abort)
                for operation in islice(pending, self.max_concurrent_chunk_uploads)
            }
            while in_flight:
                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    future.result()
                    next_operation = next(pending, None)
                    if next_operation is not None:
                        in_flight.add(
                            executor.submit(
                                self._upload_operation,
                                next_operation,
                                file_path,
                                verbose,
                                abort,
                            )
                        )
        except BaseException:
            abort.set()
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

    def _upload_operation(
        self,
        operation: UploadOperation,
        file_path: Path,
        verbose: bool,
        abort: threading.Event,
    ) -> None:
        data = read_chunk(file_path, operation.offset, operation.length)
        headers = dict(operation.headers)
        headers["Content-Length"] = str(operation.length)

        if verbose:
            console.print(
                f"[cyan]Uploading chunk offset={operation.offset} "
                f"length={operation.length} part={operation.part_number}"
            )

        last_reason = "no attempt made"
        last_status = None
        for attempt in range(1, self.max_upload_retries + 1):
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise CancelledError()
            if abort.is_set():
                raise ChunkUploadError(operation.offset, "aborted after another chunk failed")

            try:
                response = self.session.request(
                    operation.method,
                    operation.url,
                    data=data,
                    headers=headers,
                    timeout=self.request_timeout,
                )
            except requests.RequestException as e:
                last_reason = f"transport error: {e}"
                last_status = None
            else:
                if 200 <= response.status_code < 300:
                    if verbose:
                        console.print(
                            f"[green]Finished chunk offset={operation.offset} "
                            f"length={operation.length}"
                        )
                    return
                last_status = response.status_code
                last_reason = f"server returned status {response.status_code}"
                if not is_retryable_status(response.status_code):
                    raise ChunkUploadError(operation.offset, last_reason, last_status)

            if attempt < self.max_upload_retries:
                if verbose:
                    console.print(
                        f"[yellow]Chunk offset={operation.offset} failed with {last_reason}. "
                        f"Retrying attempt {attempt + 1}/{self.max_upload_retries}"
                    )
                pause(
                    backoff_delay(attempt, self.retry_base_delay),
                    self.cancel_event,
                    self.sleep,
                )

        raise ChunkUploadError(
            operation.offset,
            f"exceeded {self.max_upload_retries} attempts, last error: {last_reason}",
            last_status,
        )

    def _poll_upload_completion(self, upload_id: str, verbose: bool) -> UploadStatus:
        attempt = 0
        while True:
            status = self.upload_service.get_upload_status(upload_id)
            if status.phase.is_terminal:
                return status

            if self.poll_interval is None:
                console.print("[yellow]No poll interval configured, skipping processing wait")
                return status

            attempt += 1
            if verbose:
                console.print(
                    f"[cyan]Upload state: {status.phase.value} "
                    f"(attempt {attempt}/{self.max_poll_attempts})"
                )
            if attempt >= self.max_poll_attempts:
                raise UploadTimedOutError(status.phase.value)
            pause(self.poll_interval, self.cancel_event, self.sleep)
