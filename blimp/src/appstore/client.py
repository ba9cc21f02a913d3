import base64
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from blimp.logger import get_console
from blimp.src.appstore.models import (
    BuildSize,
    BundleId,
    Certificate,
    CertificateType,
    Device,
    DeviceStatus,
    Platform,
    ProcessingResult,
    ProcessingState,
    Profile,
    ProfileType,
    UploadChecksums,
    UploadFileDescriptor,
    UploadOperation,
    UploadPhase,
    UploadPlan,
    UploadPlatform,
    UploadStatus,
)
from blimp.src.appstore.token_provider import TokenProvider
from blimp.src.errors import (
    AppNotFoundError,
    AuthError,
    BadRequestError,
    BadResponseError,
    ConflictError,
    NotFoundError,
    TooManyRequestsError,
    UnauthorizedError,
    UndocumentedError,
    UnprocessableError,
)
from blimp.src.transfers.retry import Sleeper, linear_delay, pause

console = get_console()

BASE_URL = "https://api.appstoreconnect.apple.com"

ERRORS_BY_STATUS = {
    400: BadRequestError,
    401: UnauthorizedError,
    403: AuthError,
    404: NotFoundError,
    409: ConflictError,
    422: UnprocessableError,
    429: TooManyRequestsError,
}

# Beta detail states that end processing even though processingState is VALID
BETA_DETAIL_TERMINAL_STATES = {
    "PROCESSING_EXCEPTION": ProcessingState.PROCESSING_EXCEPTION,
    "MISSING_EXPORT_COMPLIANCE": ProcessingState.MISSING_EXPORT_COMPLIANCE,
    "BETA_REJECTED": ProcessingState.BETA_REJECTED,
}


def describe_error_response(response: requests.Response) -> str:
    """Render an error body as `code: detail` pairs joined by ` | `"""
    try:
        payload = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text[:500] if text else f"HTTP {response.status_code}"

    errors = payload.get("errors") if isinstance(payload, dict) else None
    if not errors:
        return "Unknown error"
    return " | ".join(f"{e.get('code')}: {e.get('detail')}" for e in errors)


def _human_readable_details(details: Optional[List[Dict[str, Any]]]) -> List[str]:
    readable = []
    for detail in details or []:
        if detail.get("description"):
            readable.append(detail["description"])
        elif detail.get("code"):
            readable.append(detail["code"])
        else:
            readable.append("Unknown detail")
    return readable


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    for fmt in ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z"):
        try:
            return datetime.strptime(value.replace("Z", "+0000"), fmt)
        except ValueError:
            continue
    return None


def _decode_content(value: Optional[str]) -> Optional[bytes]:
    if not value:
        return None
    return base64.b64decode(value)


def _enum_or_none(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _relationship_ids(resource: Dict[str, Any], name: str) -> List[str]:
    data = resource.get("relationships", {}).get(name, {}).get("data") or []
    return [item["id"] for item in data if item.get("id")]


class AppStoreConnectClient:
    """App Store Connect REST client covering uploads, builds, TestFlight and provisioning"""

    def __init__(
        self,
        token_provider: TokenProvider,
        session: Optional[requests.Session] = None,
        base_url: str = BASE_URL,
        max_get_retries: int = 3,
        retry_step: float = 5.0,
        timeout: float = 60,
        sleep: Optional[Sleeper] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.max_get_retries = max_get_retries
        self.retry_step = retry_step
        self.timeout = timeout
        self.sleep = sleep
        self.cancel_event = cancel_event

    # Transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token_provider.token()}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}{path}"

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Send a request and return the decoded JSON body (None for empty bodies).

        GET requests are retried on network errors and 5xx responses, waiting
        5s, 10s, 15s between attempts. Other methods are sent once.
        """
        url = self._url(path)
        retries = self.max_get_retries if method == "GET" else 0
        attempt = 0
        while True:
            try:
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                if attempt >= retries:
                    raise UndocumentedError(f"{method} {url} failed: {e}") from e
                attempt += 1
                console.print(f"[yellow]Request to {url} failed ({e}), retrying ({attempt}/{retries})")
                pause(linear_delay(attempt, self.retry_step), self.cancel_event, self.sleep)
                continue

            if response.status_code >= 500 and attempt < retries:
                attempt += 1
                console.print(
                    f"[yellow]Server returned {response.status_code} for {url}, "
                    f"retrying ({attempt}/{retries})"
                )
                pause(linear_delay(attempt, self.retry_step), self.cancel_event, self.sleep)
                continue

            return self._handle_response(response)

    def _handle_response(self, response: requests.Response) -> Optional[Dict[str, Any]]:
        if 200 <= response.status_code < 300:
            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise BadResponseError(
                    "Response body is not valid JSON", response.status_code
                ) from e

        error_cls = ERRORS_BY_STATUS.get(response.status_code, UndocumentedError)
        raise error_cls(describe_error_response(response), response.status_code)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload = self._request("GET", path, params=params)
        if payload is None:
            raise BadResponseError(f"Empty response for GET {path}")
        return payload

    def _get_collection(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Fetch every page of a collection by following links.next"""
        resources = []
        payload = self._get(path, params)
        while True:
            resources.extend(payload.get("data", []))
            next_url = payload.get("links", {}).get("next")
            if not next_url:
                return resources
            payload = self._get(next_url)

    # Apps

    def get_app_id(self, bundle_id: str) -> str:
        apps = self._get("/v1/apps", {"filter[bundleId]": bundle_id}).get("data", [])
        for app in apps:
            if app.get("attributes", {}).get("bundleId") == bundle_id:
                return app["id"]
        raise AppNotFoundError(bundle_id)

    # Build uploads

    def create_build_upload(
        self,
        app_id: str,
        app_version: str,
        build_number: str,
        platform: UploadPlatform,
        file: UploadFileDescriptor,
    ) -> UploadPlan:
        body = {
            "data": {
                "type": "buildUploads",
                "attributes": {
                    "cfBundleShortVersionString": app_version,
                    "cfBundleVersion": build_number,
                    "platform": platform.value,
                },
                "relationships": {
                    "app": {"data": {"type": "apps", "id": app_id}},
                },
            }
        }
        payload = self._request("POST", "/v1/buildUploads", json=body)
        if not payload or "data" not in payload:
            raise BadResponseError("Missing build upload in response")

        build_upload = payload["data"]
        status = self._parse_upload_status(build_upload)

        upload_file = None
        for item in payload.get("included", []):
            if item.get("type") != "buildUploadFiles":
                continue
            attributes = item.get("attributes", {})
            if attributes.get("assetType", "ASSET") == file.asset_type and attributes.get(
                "uploadOperations"
            ):
                upload_file = item
                break

        if upload_file is None:
            upload_file = self._create_build_upload_file(build_upload["id"], file)

        return UploadPlan(
            upload_id=build_upload["id"],
            upload_file_id=upload_file["id"],
            operations=self._parse_upload_operations(upload_file),
            status=status,
        )

    def _create_build_upload_file(
        self, upload_id: str, file: UploadFileDescriptor
    ) -> Dict[str, Any]:
        body = {
            "data": {
                "type": "buildUploadFiles",
                "attributes": {
                    "assetType": file.asset_type,
                    "fileName": file.file_name,
                    "fileSize": file.file_size,
                    "uti": file.uti,
                },
                "relationships": {
                    "buildUpload": {"data": {"type": "buildUploads", "id": upload_id}},
                },
            }
        }
        payload = self._request("POST", "/v1/buildUploadFiles", json=body)
        resource = (payload or {}).get("data")
        if not resource or not resource.get("attributes", {}).get("uploadOperations"):
            raise BadResponseError("No upload operations returned for build upload file")
        return resource

    def _parse_upload_operations(self, upload_file: Dict[str, Any]) -> List[UploadOperation]:
        raw_operations = upload_file.get("attributes", {}).get("uploadOperations") or []
        if not raw_operations:
            raise BadResponseError("Missing upload operations in response")

        operations = []
        for raw in raw_operations:
            if any(raw.get(key) is None for key in ("method", "url", "length", "offset")):
                raise BadResponseError("Incomplete upload operation payload")
            headers = {
                header["name"]: header["value"]
                for header in raw.get("requestHeaders") or []
                if header.get("name") and header.get("value") is not None
            }
            operations.append(
                UploadOperation(
                    method=raw["method"],
                    url=raw["url"],
                    length=int(raw["length"]),
                    offset=int(raw["offset"]),
                    headers=headers,
                    expiration=_parse_date(raw.get("expiration")),
                    part_number=raw.get("partNumber"),
                    entity_tag=raw.get("entityTag"),
                )
            )
        return operations

    def _parse_upload_status(self, build_upload: Dict[str, Any]) -> UploadStatus:
        state = build_upload.get("attributes", {}).get("state") or {}
        phase = _enum_or_none(UploadPhase, state.get("state"))
        if phase is None:
            raise BadResponseError("Missing upload state information")
        return UploadStatus(
            phase=phase,
            errors=_human_readable_details(state.get("errors")),
            warnings=_human_readable_details(state.get("warnings")),
        )

    def mark_upload_complete(
        self, upload_file_id: str, checksums: Optional[UploadChecksums] = None
    ) -> None:
        attributes: Dict[str, Any] = {"uploaded": True}
        if checksums and (checksums.sha256 or checksums.md5):
            source_checksums = {}
            if checksums.sha256:
                source_checksums["file"] = {"hash": checksums.sha256, "algorithm": "SHA_256"}
            if checksums.md5:
                source_checksums["composite"] = {"hash": checksums.md5, "algorithm": "MD5"}
            attributes["sourceFileChecksums"] = source_checksums

        body = {
            "data": {
                "type": "buildUploadFiles",
                "id": upload_file_id,
                "attributes": attributes,
            }
        }
        self._request("PATCH", f"/v1/buildUploadFiles/{upload_file_id}", json=body)

    def get_upload_status(self, upload_id: str) -> UploadStatus:
        payload = self._get(f"/v1/buildUploads/{upload_id}", {"fields[buildUploads]": "state"})
        return self._parse_upload_status(payload.get("data", {}))

    # Builds

    def find_build_id(self, app_id: str, app_version: str, build_number: str) -> Optional[str]:
        """Return the build id once the exact build number shows up, None until then"""
        params = {
            "filter[version]": build_number,
            "filter[preReleaseVersion.version]": app_version,
            "filter[app]": app_id,
            "filter[processingState]": ",".join(
                state.value for state in ProcessingState.basic_states()
            ),
            "sort": "-uploadedDate",
            "limit": 10,
            "include": "app,buildBetaDetail,preReleaseVersion",
        }
        builds = self._get("/v1/builds", params).get("data", [])
        if builds and builds[0].get("attributes", {}).get("version") == build_number:
            return builds[0]["id"]
        return None

    def get_build_processing_result(self, build_id: str) -> ProcessingResult:
        params = {
            "include": "buildBetaDetail,preReleaseVersion,buildBundles,betaBuildLocalizations",
        }
        payload = self._get(f"/v1/builds/{build_id}", params)
        build = payload.get("data", {})

        processing_state = _enum_or_none(
            ProcessingState, build.get("attributes", {}).get("processingState")
        )
        bundle_ids = _relationship_ids(build, "buildBundles")
        if processing_state is None or not bundle_ids:
            raise BadResponseError(f"Incomplete processing details for build {build_id}")

        if processing_state == ProcessingState.VALID:
            for item in payload.get("included", []):
                if item.get("type") != "buildBetaDetails":
                    continue
                attributes = item.get("attributes", {})
                for key in ("internalBuildState", "externalBuildState"):
                    if attributes.get(key) in BETA_DETAIL_TERMINAL_STATES:
                        processing_state = BETA_DETAIL_TERMINAL_STATES[attributes[key]]
                        break

        return ProcessingResult(
            processing_state=processing_state,
            build_bundle_id=bundle_ids[0],
            build_localization_ids=_relationship_ids(build, "betaBuildLocalizations"),
        )

    def get_build_bundle_sizes(self, build_bundle_id: str, devices: List[str]) -> List[BuildSize]:
        wanted = set(devices)
        sizes = []
        for item in self._get_collection(f"/v1/buildBundles/{build_bundle_id}/buildBundleFileSizes"):
            attributes = item.get("attributes", {})
            model = attributes.get("deviceModel")
            download_bytes = attributes.get("downloadBytes")
            install_bytes = attributes.get("installBytes")
            if model is None or download_bytes is None or install_bytes is None:
                raise BadResponseError(f"Incomplete size information for build bundle {build_bundle_id}")
            if model in wanted:
                sizes.append(BuildSize(model, int(download_bytes), int(install_bytes)))
        return sizes

    # TestFlight

    def list_beta_group_ids(self, app_id: str, beta_groups: List[str]) -> List[str]:
        params = {"filter[name]": ",".join(beta_groups), "filter[app]": app_id}
        return [group["id"] for group in self._get_collection("/v1/betaGroups", params)]

    def set_beta_groups(self, app_id: str, build_id: str, beta_groups: List[str]) -> None:
        group_ids = self.list_beta_group_ids(app_id, beta_groups)
        body = {"data": [{"type": "betaGroups", "id": group_id} for group_id in group_ids]}
        self._request("POST", f"/v1/builds/{build_id}/relationships/betaGroups", json=body)
        console.print(f"[green]The following beta groups were set: [{', '.join(beta_groups)}]")

    def set_changelog(self, localization_ids: List[str], changelog: str) -> None:
        if not localization_ids:
            return
        # Only the first localization is updated, TestFlight creates en-US first
        localization_id = localization_ids[0]
        body = {
            "data": {
                "type": "betaBuildLocalizations",
                "id": localization_id,
                "attributes": {"whatsNew": changelog},
            }
        }
        self._request("PATCH", f"/v1/betaBuildLocalizations/{localization_id}", json=body)
        console.print(f"[green]Changelog entry has been created:[/]\n{changelog}")

    def send_to_review(self, build_id: str) -> None:
        body = {
            "data": {
                "type": "betaAppReviewSubmissions",
                "relationships": {"build": {"data": {"type": "builds", "id": build_id}}},
            }
        }
        self._request("POST", "/v1/betaAppReviewSubmissions", json=body)
        console.print("[green]Sent to review")

    # Certificates

    def _parse_certificate(self, resource: Dict[str, Any]) -> Certificate:
        attributes = resource.get("attributes", {})
        return Certificate(
            id=resource["id"],
            name=attributes.get("name") or attributes.get("displayName") or "",
            certificate_type=_enum_or_none(CertificateType, attributes.get("certificateType")),
            content=_decode_content(attributes.get("certificateContent")),
            serial_number=attributes.get("serialNumber"),
            expiration_date=_parse_date(attributes.get("expirationDate")),
        )

    def list_certificates(
        self, certificate_type: Optional[CertificateType] = None
    ) -> List[Certificate]:
        params: Dict[str, Any] = {"limit": 200}
        if certificate_type:
            params["filter[certificateType]"] = certificate_type.value
        return [self._parse_certificate(c) for c in self._get_collection("/v1/certificates", params)]

    def create_certificate(self, csr_content: str, certificate_type: CertificateType) -> Certificate:
        body = {
            "data": {
                "type": "certificates",
                "attributes": {
                    "csrContent": csr_content,
                    "certificateType": certificate_type.value,
                },
            }
        }
        payload = self._request("POST", "/v1/certificates", json=body)
        if not payload or "data" not in payload:
            raise BadResponseError("Missing certificate in response")
        return self._parse_certificate(payload["data"])

    def delete_certificate(self, certificate_id: str) -> None:
        self._request("DELETE", f"/v1/certificates/{certificate_id}")

    # Profiles

    def _parse_profile(self, resource: Dict[str, Any]) -> Profile:
        attributes = resource.get("attributes", {})
        return Profile(
            id=resource["id"],
            name=attributes.get("name", ""),
            profile_type=_enum_or_none(ProfileType, attributes.get("profileType")),
            content=_decode_content(attributes.get("profileContent")),
            expiration_date=_parse_date(attributes.get("expirationDate")),
            state=attributes.get("profileState"),
        )

    def list_profiles(self, name: Optional[str] = None) -> List[Profile]:
        params: Dict[str, Any] = {"limit": 200}
        if name:
            params["filter[name]"] = name
        return [self._parse_profile(p) for p in self._get_collection("/v1/profiles", params)]

    def create_profile(
        self,
        name: str,
        profile_type: ProfileType,
        bundle_id: str,
        certificate_ids: List[str],
        device_ids: Optional[List[str]] = None,
    ) -> Profile:
        relationships: Dict[str, Any] = {
            "bundleId": {"data": {"type": "bundleIds", "id": bundle_id}},
            "certificates": {
                "data": [{"type": "certificates", "id": cert_id} for cert_id in certificate_ids]
            },
        }
        if device_ids:
            relationships["devices"] = {
                "data": [{"type": "devices", "id": device_id} for device_id in device_ids]
            }

        body = {
            "data": {
                "type": "profiles",
                "attributes": {"name": name, "profileType": profile_type.value},
                "relationships": relationships,
            }
        }
        payload = self._request("POST", "/v1/profiles", json=body)
        if not payload or "data" not in payload:
            raise BadResponseError("Missing profile in response")
        return self._parse_profile(payload["data"])

    def delete_profile(self, profile_id: str) -> None:
        self._request("DELETE", f"/v1/profiles/{profile_id}")

    # Bundle ids

    def get_bundle_id(self, identifier: str) -> Optional[BundleId]:
        resources = self._get_collection("/v1/bundleIds", {"filter[identifier]": identifier})
        for resource in resources:
            attributes = resource.get("attributes", {})
            # filter[identifier] is a prefix match on the server
            if attributes.get("identifier") == identifier:
                return BundleId(
                    id=resource["id"],
                    identifier=identifier,
                    name=attributes.get("name", ""),
                    platform=attributes.get("platform"),
                )
        return None

    def get_bundle_resource_id(self, identifier: str) -> Optional[str]:
        bundle = self.get_bundle_id(identifier)
        return bundle.id if bundle else None

    # Devices

    def _parse_device(self, resource: Dict[str, Any]) -> Device:
        attributes = resource.get("attributes", {})
        return Device(
            id=resource["id"],
            name=attributes.get("name", ""),
            udid=attributes.get("udid", ""),
            platform=Platform.from_api(attributes.get("platform")),
            status=_enum_or_none(DeviceStatus, attributes.get("status")) or DeviceStatus.DISABLED,
            device_class=attributes.get("deviceClass"),
            model=attributes.get("model"),
        )

    def list_devices(
        self,
        platform: Optional[Platform] = None,
        status: Optional[DeviceStatus] = None,
    ) -> List[Device]:
        params: Dict[str, Any] = {"limit": 200}
        if platform:
            params["filter[platform]"] = platform.api_value
        if status:
            params["filter[status]"] = status.value
        return [self._parse_device(d) for d in self._get_collection("/v1/devices", params)]

    def register_device(self, name: str, udid: str, platform: Platform) -> Device:
        body = {
            "data": {
                "type": "devices",
                "attributes": {"name": name, "udid": udid, "platform": platform.api_value},
            }
        }
        payload = self._request("POST", "/v1/devices", json=body)
        if not payload or "data" not in payload:
            raise BadResponseError("Missing device in response")
        return self._parse_device(payload["data"])


