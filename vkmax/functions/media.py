#!/usr/bin/env python3
"""
Media upload

Binary blobs never travel inside the RPC envelope. The flow for every kind
of media is:

1. ask the server for an upload URL over RPC (opcodes 80 / 82 / 87)
2. POST the blob as multipart/form-data to that URL (aiohttp)
3. send a SEND_MESSAGE whose attachment references what the upload returned

Files additionally need a FILE_UPLOAD_NOTIFICATION (65) and, ideally, the
server's FILE_READY_NOTIFICATION (136) event before the message is sent.
"""

from __future__ import annotations
import asyncio
import json
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Iterator, Optional, Union
from urllib.parse import parse_qsl, urlsplit

import aiohttp

from vkmax.client.events import EVENT_MESSAGE
from vkmax.functions.messages import ChatId, build_message
from vkmax.shared.config import FILE_SIZE_LIMITS, MIME_BY_EXTENSION, MIME_TYPES, PHOTO_BASE_URL, UPLOAD_ENDPOINTS
from vkmax.shared.envelope import RpcEnvelope
from vkmax.shared.errors import InvalidArgumentError, MaxError, UploadError
from vkmax.shared.log import get_logger
from vkmax.shared.opcodes import Opcode
from vkmax.shared.utils import generate_random_id

if TYPE_CHECKING:
    from vkmax.client.client import MaxClient

logger = get_logger(__name__)

HttpSession = aiohttp.ClientSession

# The video upload server answers with XML; this marks success
VIDEO_UPLOAD_OK = "<retval>1</retval>"

# Placeholder preview size the web client sends for photos
PHOTO_WIDTH = 300
PHOTO_HEIGHT = 200


# ========================================
#           MEDIA FILES
# ========================================

@dataclass
class MediaFile:
    kind: str           # "image" | "video" | "audio" | "document"
    data: bytes
    filename: str
    mime_type: str
    size: int = field(default=0)

    def __post_init__(self) -> None:
        if not self.size:
            self.size = len(self.data)


@dataclass
class UploadTarget:
    """Where and with which query parameters to POST a blob"""
    upload_url: str
    params: Dict[str, str]
    file_id: Optional[Any] = None


@dataclass
class UploadResult:
    file_id: Optional[str]
    url: Optional[str]
    raw: Dict[str, Any]


def media_type_from_mime(mime_type: str) -> Optional[str]:
    for kind, mimes in MIME_TYPES.items():
        if mime_type in mimes:
            return kind
    return None


def validate_file_size(size: int, kind: str) -> bool:
    limit = FILE_SIZE_LIMITS.get(kind)
    return limit is not None and size <= limit


def guess_mime_type(filename: str, default: str = "application/octet-stream") -> str:
    return MIME_BY_EXTENSION.get(Path(filename).suffix.lower(), default)


def media_file_from_bytes(data: bytes, filename: str, mime_type: str) -> MediaFile:
    kind = media_type_from_mime(mime_type)
    if kind is None:
        raise InvalidArgumentError(f"Unsupported MIME type: {mime_type}")
    return MediaFile(kind=kind, data=data, filename=filename, mime_type=mime_type)


def media_file_from_path(path: Union[str, Path]) -> MediaFile:
    path = Path(path)
    mime_type = guess_mime_type(path.name)
    kind = media_type_from_mime(mime_type)
    if kind is None:
        raise InvalidArgumentError(f"Unsupported file type: {path.suffix}")
    return MediaFile(kind=kind, data=path.read_bytes(), filename=path.name, mime_type=mime_type)


# ========================================
#           HTTP
# ========================================

@asynccontextmanager
async def _http_session(http: Optional[HttpSession]) -> AsyncIterator[HttpSession]:
    if http is not None:
        yield http
        return
    async with aiohttp.ClientSession() as session:
        yield session


async def _post_file(
    http: HttpSession,
    url: str,
    data: bytes,
    filename: str,
    mime_type: str,
    params: Optional[Dict[str, str]] = None,
) -> str:
    """POST ``data`` as the multipart field ``file``; returns the response body"""
    form = aiohttp.FormData()
    form.add_field("file", data, filename=filename, content_type=mime_type)
    try:
        async with http.post(url, data=form, params=params) as resp:
            body = await resp.text()
            if resp.status >= 400:
                raise UploadError(f"HTTP upload error: {resp.status} {resp.reason}")
            return body
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise UploadError(f"HTTP upload to {url} failed: {e}") from e


def _parse_json(body: str) -> Dict[str, Any]:
    try:
        result = json.loads(body)
    except ValueError as e:
        raise UploadError(f"Upload server returned invalid JSON: {e}") from e
    if not isinstance(result, dict):
        raise UploadError("Upload server returned a non-object JSON body")
    return result


def _first_upload_info(response: RpcEnvelope) -> Dict[str, Any]:
    """``payload.info[0]`` of a video/file upload URL response"""
    response.raise_for_error()
    info = response.payload.get("info") if isinstance(response.payload, dict) else None
    if not isinstance(info, list) or not info or not isinstance(info[0], dict) or not info[0].get("url"):
        raise UploadError("Could not get upload URL")
    return info[0]


@contextmanager
def _upload_errors(what: str) -> Iterator[None]:
    """Re-raise anything that is not already a MaxError as UploadError"""
    try:
        yield
    except MaxError:
        raise
    except Exception as e:
        raise UploadError(f"{what} failed: {e}") from e


# ========================================
#           GENERIC UPLOAD
# ========================================

async def request_upload_url(client: "MaxClient") -> UploadTarget:
    """Ask for an upload slot and split its URL into endpoint and query parameters."""
    client.require_login()

    response = await client.invoke(Opcode.REQUEST_UPLOAD_URL, {"count": 1})
    response.raise_for_error()
    payload = response.payload if isinstance(response.payload, dict) else {}
    if not payload.get("url"):
        raise UploadError("Invalid server response: missing upload URL")

    parts = urlsplit(payload["url"])
    return UploadTarget(
        upload_url=f"{parts.scheme}://{parts.netloc}{parts.path}",
        params=dict(parse_qsl(parts.query)),
        file_id=payload.get("fileId") or payload.get("photoId"),
    )


async def upload_image(
    media_file: MediaFile,
    api_token: str,
    photo_ids: str,
    *,
    http: Optional[HttpSession] = None,
) -> UploadResult:
    if media_file.kind != "image":
        raise InvalidArgumentError("File is not an image")
    if not validate_file_size(media_file.size, "image"):
        raise UploadError("Image file size exceeds limit (10MB)")

    async with _http_session(http) as session:
        body = await _post_file(
            session,
            UPLOAD_ENDPOINTS["images"],
            media_file.data,
            media_file.filename,
            media_file.mime_type,
            params={"apiToken": api_token, "photoIds": photo_ids},
        )
    result = _parse_json(body)
    if result.get("error"):
        raise UploadError(f"Image upload rejected: {result['error']}")
    return UploadResult(
        file_id=result.get("id") or result.get("photoId"),
        url=result.get("url") or result.get("link"),
        raw=result,
    )


async def upload_file(
    media_file: MediaFile,
    sig: str,
    expires: Union[int, str],
    client_type: Union[int, str],
    file_id: Union[int, str],
    user_id: Union[int, str],
    *,
    http: Optional[HttpSession] = None,
) -> UploadResult:
    if not validate_file_size(media_file.size, media_file.kind):
        limit_mb = FILE_SIZE_LIMITS.get(media_file.kind, 0) // (1024 * 1024)
        raise UploadError(f"File size exceeds limit ({limit_mb}MB)")

    params = {
        "sig": sig,
        "expires": str(expires),
        "clientType": str(client_type),
        "id": str(file_id),
        "userId": str(user_id),
    }
    async with _http_session(http) as session:
        body = await _post_file(
            session,
            UPLOAD_ENDPOINTS["files"],
            media_file.data,
            media_file.filename,
            media_file.mime_type,
            params=params,
        )
    result = _parse_json(body)
    if result.get("error"):
        raise UploadError(f"File upload rejected: {result['error']}")
    return UploadResult(
        file_id=result.get("id") or result.get("fileId"),
        url=result.get("url") or result.get("link"),
        raw=result,
    )


async def upload_media(
    media_file: MediaFile,
    params: Dict[str, str],
    *,
    http: Optional[HttpSession] = None,
) -> UploadResult:
    """Dispatch to upload_image or upload_file using the parameters of an UploadTarget"""
    try:
        if media_file.kind == "image":
            return await upload_image(media_file, params["apiToken"], params["photoIds"], http=http)
        return await upload_file(
            media_file,
            params["sig"],
            params["expires"],
            params["clientType"],
            params["id"],
            params["userId"],
            http=http,
        )
    except KeyError as e:
        raise UploadError(f"Upload parameters missing {e}") from e


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


async def send_media_message(
    client: "MaxClient",
    chat_id: ChatId,
    media_file: MediaFile,
    text: str = "",
    notify: bool = True,
    *,
    http: Optional[HttpSession] = None,
) -> RpcEnvelope:
    target = await request_upload_url(client)
    logger.info("Got upload URL %s", target.upload_url, extra={"chat_id": chat_id})

    result = await upload_media(media_file, target.params, http=http)
    file_id = result.file_id or ""

    if media_file.kind == "image":
        attach = {
            "_type": "PHOTO",
            "photoId": _as_int(file_id),
            "photoToken": target.params.get("photoIds", ""),
            "width": PHOTO_WIDTH,
            "height": PHOTO_HEIGHT,
            "baseUrl": result.url or "",
        }
    else:
        attach = {
            "_type": "FILE",
            "name": media_file.filename,
            "size": media_file.size,
            "fileId": _as_int(file_id),
            "token": target.params.get("sig", ""),
        }

    payload = {
        "chatId": int(chat_id),
        "message": build_message(text, attaches=[attach]),
        "notify": notify,
    }
    return await client.invoke(Opcode.SEND_MESSAGE, payload)


# ========================================
#           ONE-SHOT UPLOAD AND SEND
# ========================================

async def upload_and_send_photo(
    client: "MaxClient",
    chat_id: ChatId,
    data: bytes,
    filename: str,
    text: str = "",
    *,
    http: Optional[HttpSession] = None,
) -> RpcEnvelope:
    client.require_login()

    with _upload_errors("Photo upload"):
        response = await client.invoke(Opcode.REQUEST_UPLOAD_URL, {"count": 1})
        response.raise_for_error()
        upload_url = response.payload.get("url") if isinstance(response.payload, dict) else None
        if not upload_url:
            raise UploadError("Could not get upload URL")

        async with _http_session(http) as session:
            body = await _post_file(session, upload_url, data, filename, guess_mime_type(filename, "image/jpeg"))
        photos = _parse_json(body).get("photos")
        if not isinstance(photos, dict):
            raise UploadError("Upload response carries no photos map")
        photo_key = next(iter(photos), None)
        photo = photos.get(photo_key) if photo_key else None
        photo_token = photo.get("token") if isinstance(photo, dict) else None
        if not photo_key or not photo_token:
            raise UploadError("Upload response carries no photo id or token")

        attach = {
            "_type": "PHOTO",
            "type": "PHOTO",
            "photoId": photo_key,
            "photoToken": photo_token,
            "width": PHOTO_WIDTH,
            "height": PHOTO_HEIGHT,
            "baseUrl": f"{PHOTO_BASE_URL}?r={photo_key}",
        }
        return await client.invoke(Opcode.SEND_MESSAGE, {
            "chatId": chat_id,
            "message": build_message(text, attaches=[attach]),
            "notify": True,
        })


async def upload_and_send_video(
    client: "MaxClient",
    chat_id: ChatId,
    data: bytes,
    filename: str,
    text: str = "",
    *,
    http: Optional[HttpSession] = None,
) -> RpcEnvelope:
    client.require_login()

    with _upload_errors("Video upload"):
        info = _first_upload_info(await client.invoke(Opcode.REQUEST_VIDEO_UPLOAD_URL, {"count": 1}))

        async with _http_session(http) as session:
            body = await _post_file(session, info["url"], data, filename, guess_mime_type(filename, "video/mp4"))
        if VIDEO_UPLOAD_OK not in body:
            raise UploadError(f"Video upload failed: {body}")

        attach = {
            "token": info.get("token"),
            "videoId": info.get("videoId"),
            "_type": "VIDEO",
        }
        return await client.invoke(Opcode.SEND_MESSAGE, {
            "chatId": chat_id,
            "message": build_message(text, attaches=[attach]),
            "notify": True,
        })


async def upload_and_send_file(
    client: "MaxClient",
    chat_id: ChatId,
    data: bytes,
    filename: str,
    *,
    http: Optional[HttpSession] = None,
) -> RpcEnvelope:
    client.require_login()

    with _upload_errors("File upload"):
        info = _first_upload_info(await client.invoke(Opcode.REQUEST_FILE_UPLOAD_URL, {"count": 1}))
        file_id = info.get("fileId")

        def _is_ready(frame: RpcEnvelope) -> bool:
            return (
                frame.opcode == Opcode.FILE_READY_NOTIFICATION
                and isinstance(frame.payload, dict)
                and frame.payload.get("fileId") == file_id
            )

        ready = client.events.expect(EVENT_MESSAGE, _is_ready)
        try:
            async with _http_session(http) as session:
                body = await _post_file(session, info["url"], data, filename, guess_mime_type(filename))
            logger.debug("File server response: %s", body)

            notification = await client.invoke(Opcode.FILE_UPLOAD_NOTIFICATION, {"chatId": chat_id, "type": "FILE"})
            logger.debug("Upload notification acknowledged: %s", notification.payload)

            try:
                await asyncio.wait_for(ready, client.config.file_ready_timeout)
                logger.info("File %s is ready", file_id, extra={"chat_id": chat_id})
            except asyncio.TimeoutError:
                logger.warning("No FILE_READY for %s, sending anyway", file_id, extra={"chat_id": chat_id})
        finally:
            if not ready.done():
                ready.cancel()

        return await client.invoke(Opcode.SEND_MESSAGE, {
            "chatId": chat_id,
            "message": {
                "cid": generate_random_id(),
                "attaches": [{"_type": "FILE", "fileId": file_id}],
            },
            "notify": True,
        })
