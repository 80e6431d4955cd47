"""Google Drive folder used as a backup transport."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlencode

import requests

from .utils import ensure_directory, mask_sensitive

LOGGER = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
SCOPES = ("https://www.googleapis.com/auth/drive.file",)
DEFAULT_REDIRECT_URI = "http://localhost"


class CloudUploadError(Exception):
    """Raised when uploading a file to cloud storage fails."""


class CredentialsMissingError(CloudUploadError):
    """Raised when the client registration or the granted token file is absent."""


class AuthorizationError(CloudUploadError):
    """Raised when the one-time Drive authorization cannot be completed."""


@dataclass
class DriveCredentials:
    client_id: str
    client_secret: str
    refresh_token: str
    token_uri: str = TOKEN_URL
    access_token: Optional[str] = None

    @classmethod
    def from_files(cls, credentials_path: Path, token_path: Path) -> "DriveCredentials":
        client = _read_json(credentials_path, "client registration")
        token = _read_json(token_path, "token")
        registration = _registration(client)
        client_id = registration.get("client_id")
        client_secret = registration.get("client_secret")
        refresh_token = token.get("refresh_token")
        if not client_id or not client_secret:
            raise CloudUploadError(f"'{credentials_path}' does not contain client_id and client_secret.")
        if not refresh_token:
            raise CloudUploadError(f"'{token_path}' does not contain a refresh_token; authorize again.")
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
            token_uri=registration.get("token_uri") or TOKEN_URL,
            access_token=token.get("access_token"),
        )


def _registration(client: Dict) -> Dict:
    return client.get("installed") or client.get("web") or client


def _read_json(path: Path, description: str) -> Dict:
    path = Path(path)
    if not path.exists():
        raise CredentialsMissingError(f"Drive {description} file '{path}' not found.")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise CloudUploadError(f"Drive {description} file '{path}' could not be read: {exc}") from exc
    if not isinstance(data, dict):
        raise CloudUploadError(f"Drive {description} file '{path}' must contain a JSON object.")
    return data


@dataclass
class DriveUploader:
    credentials_path: Path
    token_path: Path
    timeout: float = 60.0

    def upload_file(self, local_path: Path, folder_id: str, name: Optional[str] = None) -> str:
        """Create a new file in *folder_id* with the content of *local_path*.

        Always creates a new object and returns its id; existing files are
        never updated.
        """

        local_path = Path(local_path)
        if not local_path.exists():
            raise CloudUploadError(f"File to upload '{local_path}' not found.")
        credentials = DriveCredentials.from_files(Path(self.credentials_path), Path(self.token_path))
        access_token = self._refresh_access_token(credentials)
        secrets = [credentials.client_secret, credentials.refresh_token, access_token]

        metadata = {"name": name or local_path.name, "parents": [folder_id]}
        files = {
            "metadata": (None, json.dumps(metadata), "application/json; charset=UTF-8"),
            "file": (metadata["name"], local_path.read_bytes(), "text/plain"),
        }
        try:
            response = requests.post(
                UPLOAD_URL,
                params={"uploadType": "multipart", "fields": "id"},
                headers={"Authorization": f"Bearer {access_token}"},
                files=files,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise CloudUploadError(f"Drive upload failed: {mask_sensitive(str(exc), secrets)}") from exc
        if response.status_code not in {200, 201}:
            raise CloudUploadError(
                f"Drive upload failed: HTTP {response.status_code} {mask_sensitive(response.text, secrets)}"
            )
        file_id = _response_json(response, "upload").get("id")
        if not file_id:
            raise CloudUploadError("Drive upload response did not contain a file id.")
        LOGGER.info("File '%s' uploaded to Drive folder '%s' as '%s'.", local_path, folder_id, metadata["name"])
        return file_id

    # ------------------------------------------------------------------
    def _refresh_access_token(self, credentials: DriveCredentials) -> str:
        secrets = [credentials.client_secret, credentials.refresh_token]
        try:
            response = requests.post(
                credentials.token_uri,
                data={
                    "client_id": credentials.client_id,
                    "client_secret": credentials.client_secret,
                    "refresh_token": credentials.refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise CloudUploadError(f"Drive token refresh failed: {mask_sensitive(str(exc), secrets)}") from exc
        if response.status_code != 200:
            raise CloudUploadError(
                f"Drive token refresh failed: HTTP {response.status_code} {mask_sensitive(response.text, secrets)}"
            )
        access_token = _response_json(response, "token refresh").get("access_token")
        if not access_token:
            raise CloudUploadError("Drive token refresh response did not contain an access token.")
        return access_token


@dataclass
class DriveAuthorizer:
    """One-time desktop authorization that stores a refresh token in ``token_path``."""

    credentials_path: Path
    token_path: Path
    timeout: float = 60.0

    def token_exists(self) -> bool:
        return Path(self.token_path).exists()

    def authorization_url(self) -> str:
        registration = self._registration()
        params = {
            "client_id": registration["client_id"],
            "redirect_uri": _redirect_uri(registration),
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{registration.get('auth_uri') or AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> Path:
        """Trade the code from the consent page for tokens and write them to ``token_path``."""

        token_path = Path(self.token_path)
        if token_path.exists():
            raise AuthorizationError(f"Token file '{token_path}' already exists. Delete it to authorize again.")
        registration = self._registration()
        secrets = [registration["client_secret"], code]
        try:
            response = requests.post(
                registration.get("token_uri") or TOKEN_URL,
                data={
                    "code": code,
                    "client_id": registration["client_id"],
                    "client_secret": registration["client_secret"],
                    "redirect_uri": _redirect_uri(registration),
                    "grant_type": "authorization_code",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AuthorizationError(f"Drive authorization failed: {mask_sensitive(str(exc), secrets)}") from exc
        if response.status_code != 200:
            raise AuthorizationError(
                f"Drive authorization failed: HTTP {response.status_code} {mask_sensitive(response.text, secrets)}"
            )
        tokens = _response_json(response, "authorization")
        if not tokens.get("refresh_token"):
            raise AuthorizationError("Drive authorization response did not contain a refresh token.")
        ensure_directory(token_path.parent)
        token_path.write_text(json.dumps(tokens, indent=2), encoding="utf-8")
        LOGGER.info("Drive token stored to '%s'.", token_path)
        return token_path

    # ------------------------------------------------------------------
    def _registration(self) -> Dict:
        registration = _registration(_read_json(Path(self.credentials_path), "client registration"))
        if not registration.get("client_id") or not registration.get("client_secret"):
            raise AuthorizationError(f"'{self.credentials_path}' does not contain client_id and client_secret.")
        return registration


def _redirect_uri(registration: Dict) -> str:
    uris = registration.get("redirect_uris") or [DEFAULT_REDIRECT_URI]
    return uris[0]


def _response_json(response: requests.Response, action: str) -> Dict:
    try:
        data = response.json()
    except ValueError as exc:
        raise CloudUploadError(f"Drive {action} returned invalid JSON.") from exc
    return data if isinstance(data, dict) else {}


__all__ = [
    "AuthorizationError",
    "CloudUploadError",
    "CredentialsMissingError",
    "DriveAuthorizer",
    "DriveCredentials",
    "DriveUploader",
]
