import dataclasses
import json
import typing
from typing import Any, ClassVar, Dict, List, Optional, Union

PRIORITY_MIN = 1
PRIORITY_MAX = 32


def _unwrap_optional(hint):
    """Return X for Optional[X], otherwise the hint unchanged."""
    if typing.get_origin(hint) is Union:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


# ==============================================================================
#  Base Message class
# ==============================================================================

@dataclasses.dataclass
class Message:
    """Base for all protocol models. Provides dict/JSON round-trip."""

    @classmethod
    def model_validate(cls, data: dict):
        """Construct from dict, recursively hydrating nested Message fields."""
        if not isinstance(data, dict):
            raise TypeError(f"{cls.__name__} expects a dict, got {type(data).__name__}")
        hints = typing.get_type_hints(cls)
        kwargs = {}
        for f in dataclasses.fields(cls):
            if f.name not in data:
                continue
            val = data[f.name]
            hint = _unwrap_optional(hints.get(f.name))
            origin = typing.get_origin(hint)
            # List[MessageSubclass]
            if origin is list and val:
                inner = typing.get_args(hint)[0] if typing.get_args(hint) else None
                if inner and isinstance(inner, type) and issubclass(inner, Message):
                    val = [inner.model_validate(v) if isinstance(v, dict) else v for v in val]
            # Bare (or Optional) MessageSubclass field
            elif isinstance(hint, type) and issubclass(hint, Message) and isinstance(val, dict):
                val = hint.model_validate(val)
            kwargs[f.name] = val
        return cls(**kwargs)

    def model_dump(self) -> dict:
        return dataclasses.asdict(self)

    def model_dump_json(self) -> str:
        return json.dumps(self.model_dump())


# ==============================================================================
#  Files
# ==============================================================================

@dataclasses.dataclass
class LocalFile(Message):
    """Local (download-side) status of a file."""
    path: str = ""
    can_be_downloaded: bool = False
    is_downloading_active: bool = False
    is_downloading_completed: bool = False
    downloaded_size: int = 0


@dataclasses.dataclass
class RemoteFile(Message):
    """Remote (upload-side) status of a file."""
    id: str = ""
    is_uploading_active: bool = False
    is_uploading_completed: bool = False
    uploaded_size: int = 0


@dataclasses.dataclass
class File(Message):
    """Snapshot of a backend-tracked file. size == 0 means unknown."""
    id: int = 0
    size: int = 0
    expected_size: int = 0
    local: LocalFile = dataclasses.field(default_factory=LocalFile)
    remote: RemoteFile = dataclasses.field(default_factory=RemoteFile)


@dataclasses.dataclass
class PhotoSize(Message):
    """One resolution variant of a photo."""
    type: str = ""
    width: int = 0
    height: int = 0
    photo: File = dataclasses.field(default_factory=File)


@dataclasses.dataclass
class Photo(Message):
    """Resolution variants, ascending. At least one is required."""
    sizes: List[PhotoSize] = dataclasses.field(default_factory=list)

    def __post_init__(self):
        if not self.sizes:
            raise ValueError("photo must have at least one size")


# ==============================================================================
#  Chats, users, messages
# ==============================================================================

@dataclasses.dataclass
class ChatPhoto(Message):
    small: File = dataclasses.field(default_factory=File)
    big: File = dataclasses.field(default_factory=File)


@dataclasses.dataclass
class ProfilePhoto(Message):
    id: int = 0
    small: File = dataclasses.field(default_factory=File)
    big: File = dataclasses.field(default_factory=File)


@dataclasses.dataclass
class Chat(Message):
    id: int = 0
    type: str = "private"
    title: str = ""
    photo: Optional[ChatPhoto] = None


@dataclasses.dataclass
class User(Message):
    id: int = 0
    first_name: str = ""
    last_name: str = ""
    profile_photo: Optional[ProfilePhoto] = None


@dataclasses.dataclass
class Location(Message):
    latitude: float = 0.0
    longitude: float = 0.0


# --- Message content: closed sum type, discriminated by `kind` on the wire ---

@dataclasses.dataclass
class MessageText(Message):
    kind: ClassVar[str] = "text"
    text: str = ""


@dataclasses.dataclass
class MessagePhoto(Message):
    kind: ClassVar[str] = "photo"
    photo: Optional[Photo] = None
    caption: str = ""


@dataclasses.dataclass
class MessageVideo(Message):
    kind: ClassVar[str] = "video"
    video: File = dataclasses.field(default_factory=File)
    thumbnail: Optional[PhotoSize] = None
    duration: int = 0


@dataclasses.dataclass
class MessageDocument(Message):
    kind: ClassVar[str] = "document"
    document: File = dataclasses.field(default_factory=File)
    file_name: str = ""


@dataclasses.dataclass
class MessageUnsupported(Message):
    """Any content kind this client does not model."""
    kind: str = "unsupported"


MessageContent = Union[MessageText, MessagePhoto, MessageVideo, MessageDocument, MessageUnsupported]

_CONTENT_TYPES: Dict[str, type] = {
    t.kind: t for t in (MessageText, MessagePhoto, MessageVideo, MessageDocument)
}


def parse_content(data: dict) -> MessageContent:
    kind = data.get("kind", "")
    content_type = _CONTENT_TYPES.get(kind)
    if content_type is None:
        return MessageUnsupported(kind=kind)
    fields = {k: v for k, v in data.items() if k != "kind"}
    return content_type.model_validate(fields)


@dataclasses.dataclass
class ChatMessage(Message):
    id: int = 0
    chat_id: int = 0
    content: MessageContent = dataclasses.field(default_factory=MessageText)

    @classmethod
    def model_validate(cls, data: dict):
        if not isinstance(data, dict):
            raise TypeError(f"{cls.__name__} expects a dict, got {type(data).__name__}")
        content = data.get("content") or {}
        return cls(
            id=data.get("id", 0),
            chat_id=data.get("chat_id", 0),
            content=parse_content(content) if isinstance(content, dict) else content,
        )

    def model_dump(self) -> dict:
        d = dataclasses.asdict(self)
        d["content"]["kind"] = self.content.kind
        return d


# ==============================================================================
#  Base Request / Response
# ==============================================================================

@dataclasses.dataclass
class Request(Message):
    """Base model for all client-to-backend requests."""
    command: str = ""
    request_id: Optional[str] = None


@dataclasses.dataclass
class Response(Message):
    """Base model for all backend-to-client replies."""
    request_id: str = ""
    status: str = "success"
    message: Optional[str] = None


@dataclasses.dataclass
class ErrorResponse(Response):
    status: str = "error"
    message: str = ""


@dataclasses.dataclass
class FileResponse(Response):
    file: Optional[File] = None


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if not (low <= value <= high):
        raise ValueError(f"{name} must be {low}-{high}, got {value}")


# ==============================================================================
#  Request/reply calls
# ==============================================================================

@dataclasses.dataclass
class GetFileRequest(Request):
    command: str = "get_file"
    file_id: int = 0


@dataclasses.dataclass
class UploadFileRequest(Request):
    command: str = "upload_file"
    path: str = ""
    file_type: str = ""
    priority: int = PRIORITY_MIN

    def __post_init__(self):
        _check_range("priority", self.priority, PRIORITY_MIN, PRIORITY_MAX)


@dataclasses.dataclass
class GetMapThumbnailFileRequest(Request):
    command: str = "get_map_thumbnail_file"
    location: Location = dataclasses.field(default_factory=Location)
    zoom: int = 13
    width: int = 300
    height: int = 200
    scale: int = 1
    chat_id: int = 0

    def __post_init__(self):
        _check_range("zoom", self.zoom, 13, 20)
        _check_range("width", self.width, 16, 1024)
        _check_range("height", self.height, 16, 1024)
        _check_range("scale", self.scale, 1, 3)


# ==============================================================================
#  Fire-and-forget sends
# ==============================================================================

@dataclasses.dataclass
class DownloadFileRequest(Request):
    command: str = "download_file"
    file_id: int = 0
    priority: int = PRIORITY_MIN

    def __post_init__(self):
        _check_range("priority", self.priority, PRIORITY_MIN, PRIORITY_MAX)


@dataclasses.dataclass
class CancelDownloadFileRequest(Request):
    command: str = "cancel_download_file"
    file_id: int = 0
    only_if_pending: bool = False


@dataclasses.dataclass
class DeleteFileRequest(Request):
    command: str = "delete_file"
    file_id: int = 0


@dataclasses.dataclass
class CancelUploadFileRequest(Request):
    command: str = "cancel_upload_file"
    file_id: int = 0


# ==============================================================================
#  Notifications
# ==============================================================================

@dataclasses.dataclass
class Notification(Message):
    """Unsolicited backend-to-client message."""
    type: str = ""
    data: Dict[str, Any] = dataclasses.field(default_factory=dict)  # typed at consumption (XxxData.model_validate())


@dataclasses.dataclass
class FileUpdatedData(Message):
    file: File = dataclasses.field(default_factory=File)


@dataclasses.dataclass
class ChatCreatedData(Message):
    chat: Chat = dataclasses.field(default_factory=Chat)


@dataclasses.dataclass
class UserUpdatedData(Message):
    user: User = dataclasses.field(default_factory=User)


@dataclasses.dataclass
class MessageReceivedData(Message):
    message: ChatMessage = dataclasses.field(default_factory=ChatMessage)
