import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol

from blimp.logger import get_console
from blimp.src.appstore.models import ProcessingState, UploadConfig, UploadStatus
from blimp.src.appstore.services import AppQueryService, BuildQueryService
from blimp.src.errors import (
    BetaRejectedError,
    FailedProcessingError,
    FailedToGetAppSizesError,
    InvalidBinaryError,
    MissingExportComplianceError,
    NoBuildIdError,
    ProcessingError,
    ProcessingExceptionError,
    ProcessingTimedOutError,
    TransporterError,
)
from blimp.src.stages.device_models import name_for
from blimp.src.transfers.retry import Sleeper, pause

console = get_console()

TERMINAL_STATE_ERRORS = {
    ProcessingState.FAILED: FailedProcessingError,
    ProcessingState.INVALID: InvalidBinaryError,
    ProcessingState.PROCESSING_EXCEPTION: ProcessingExceptionError,
    ProcessingState.MISSING_EXPORT_COMPLIANCE: MissingExportComplianceError,
    ProcessingState.BETA_REJECTED: BetaRejectedError,
}


class ProcessingPhase(Enum):
    NOT_STARTED = "not_started"
    WAITING_FOR_BUILD = "waiting_for_build"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass
class ProcessResult:
    build_id: str
    build_bundle_id: str
    build_localization_ids: List[str] = field(default_factory=list)


@dataclass
class AppSize:
    device_name: str
    download_size: int
    install_size: int


class Uploader(Protocol):
    def upload(self, config: UploadConfig, verbose: bool = False) -> UploadStatus: ...


class Approach:
    """Delivery stage: upload the build, wait for processing, report its size"""

    def __init__(
        self,
        uploader: Uploader,
        apps: AppQueryService,
        builds: BuildQueryService,
        ignore_uploader_failure: bool = False,
        poll_interval: float = 30,
        max_attempts: int = 120,
        sleep: Optional[Sleeper] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.uploader = uploader
        self.apps = apps
        self.builds = builds
        self.ignore_uploader_failure = ignore_uploader_failure
        self.poll_interval = poll_interval
        self.max_attempts = max(1, max_attempts)
        self.sleep = sleep
        self.cancel_event = cancel_event
        self.phase = ProcessingPhase.NOT_STARTED
        self.failure: Optional[ProcessingError] = None

    def start(self, config: UploadConfig, verbose: bool = False) -> Optional[UploadStatus]:
        """Upload the build. Uploader failures are ignored only when configured to"""
        try:
            return self.uploader.upload(config, verbose=verbose)
        except TransporterError as e:
            console.print(f"[yellow]Transporter error: [{e.error}]!")
            if self.ignore_uploader_failure:
                console.print("[yellow]Ignoring uploader failure, continuing")
                return None
            raise

    def hold(self, bundle_id: str, app_version: str, build_number: str) -> ProcessResult:
        """Wait until the uploaded build shows up and finishes processing"""
        app_id = self.apps.get_app_id(bundle_id)
        console.print(f"[blue]App id for {bundle_id}:[/] {app_id}")

        try:
            build_id = self._wait_for_build(app_id, app_version, build_number)
            return self._wait_for_processing(build_id)
        except ProcessingError as e:
            self.phase = ProcessingPhase.FAILED
            self.failure = e
            raise

    def _wait_for_build(self, app_id: str, app_version: str, build_number: str) -> str:
        self.phase = ProcessingPhase.WAITING_FOR_BUILD
        attempts = 0
        while True:
            build_id = self.builds.find_build_id(app_id, app_version, build_number)
            if build_id:
                return build_id

            attempts += 1
            if attempts >= self.max_attempts:
                raise ProcessingTimedOutError(
                    f"Build {app_version} ({build_number}) did not appear in App Store Connect "
                    f"after {attempts} attempts"
                )
            console.print("[cyan]Waiting for the build to appear in App Store Connect...")
            pause(self.poll_interval, self.cancel_event, self.sleep)

    def _wait_for_processing(self, build_id: Optional[str]) -> ProcessResult:
        if not build_id:
            raise NoBuildIdError()

        self.phase = ProcessingPhase.PROCESSING
        attempts = 0
        while True:
            result = self.builds.get_build_processing_result(build_id)
            state = result.processing_state

            if state == ProcessingState.VALID:
                self.phase = ProcessingPhase.PROCESSED
                console.print(
                    f"[green]Build has been successfully processed! BuildId: {build_id}"
                )
                return ProcessResult(
                    build_id=build_id,
                    build_bundle_id=result.build_bundle_id,
                    build_localization_ids=list(result.build_localization_ids),
                )

            if state in TERMINAL_STATE_ERRORS:
                error: ProcessingError = TERMINAL_STATE_ERRORS[state]()
                console.print(f"[red]Processing failed ({state.value}):[/] {error}")
                raise error

            attempts += 1
            if attempts >= self.max_attempts:
                raise ProcessingTimedOutError(
                    f"Build {build_id} was still processing after {attempts} attempts"
                )
            console.print("[cyan]Waiting for the build to finish processing...")
            pause(self.poll_interval, self.cancel_event, self.sleep)

    def mass(self, build_bundle_id: str, devices: List[str]) -> List[AppSize]:
        """Download and install sizes for the requested device models"""
        try:
            sizes = self.builds.get_build_bundle_sizes(build_bundle_id, devices)
        except Exception as e:
            console.print(
                f"[red]Could not get build sizes for buildBundleId {build_bundle_id}:[/] {e}"
            )
            raise FailedToGetAppSizesError() from e

        return [
            AppSize(
                device_name=name_for(size.device_model),
                download_size=size.download_bytes,
                install_size=size.install_bytes,
            )
            for size in sizes
        ]
