#!/usr/bin/env python3
from __future__ import annotations

import json
import logging
import socketserver
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, Optional, Sequence, Tuple

from puppetdb_browser.errors import PuppetDBBrowserError

logger = logging.getLogger(__name__)

# Placeholder child count for containers whose children are fetched on demand.
LAZY_CHILDREN_HINT = 1


@dataclass(frozen=True)
class ProviderOptions:
    """Configuration for a provider instance.

    Only the minimal options required by current providers are included.
    Extend as needed when adding new providers.
    """

    root_name: str


class Fetch(str, Enum):
    """When an entry computes its result.

    LAZY entries issue their request on first access; EAGER entries compute
    the result at construction so the host can skip a round trip.
    """

    LAZY = "lazy"
    EAGER = "eager"


class ObjectProvider(ABC):
    """Base class that centralizes protocol parsing and server glue.

    Subclasses implement data retrieval methods.
    """

    METHOD_KEYS = ("method", "message", "type", "command", "action")

    # ---- Protocol helpers (class-level, shared) ----
    @classmethod
    def is_method(cls, message: Any, method: str) -> bool:
        if isinstance(message, str):
            return message.strip() == method
        if isinstance(message, dict):
            if any(message.get(k) == method for k in cls.METHOD_KEYS):
                return True
            if method in message:
                value = message.get(method)
                return bool(value) if value is not None else True
        return False

    @staticmethod
    def extract_object_id(message: Any) -> Optional[str]:
        if isinstance(message, dict):
            for key in ["id", "path", "object", "objectId", "ObjectId"]:
                value = message.get(key)
                if isinstance(value, str):
                    return value
        return None

    @staticmethod
    def extract_state(message: Any) -> Optional[Dict[str, Any]]:
        if isinstance(message, dict):
            value = message.get("state")
            if isinstance(value, dict):
                return value
        return None

    # ---- Instance lifecycle ----
    def __init__(self, options: ProviderOptions) -> None:
        self.options = options

    # ---- Message handling ----
    def handle_message(self, incoming: Any) -> Dict[str, Any]:
        if self.is_method(incoming, "GetInfo"):
            return {
                "RootName": self.options.root_name,
                "schemas": self.get_schemas_payload(),
            }
        if self.is_method(incoming, "GetRootObjects"):
            return self._guarded("serve objects", self.get_root_objects_payload)
        if self.is_method(incoming, "GetObjects"):
            object_id = self.extract_object_id(incoming)
            if not object_id:
                return {"error": "Missing id"}
            state = self.extract_state(incoming)
            return self._guarded(
                "list objects", lambda: self.get_objects_for_path(object_id, state)
            )
        if self.is_method(incoming, "Read"):
            object_id = self.extract_object_id(incoming)
            if not object_id:
                return {"error": "Missing id"}
            state = self.extract_state(incoming)
            return self._guarded(
                "read object", lambda: self.read_object(object_id, state)
            )
        return {"error": "Unknown message"}

    def _guarded(self, action: str, fn: Any) -> Dict[str, Any]:
        try:
            return fn()
        except PuppetDBBrowserError as exc:
            logger.error("Failed to %s: %s", action, exc)
            return {"error": f"Failed to {action}: {exc}", "error_type": type(exc).__name__}
        except Exception as exc:
            logger.exception("Unexpected failure while trying to %s", action)
            return {"error": f"Failed to {action}: {exc}"}

    # ---- Abstract data retrieval ----
    @abstractmethod
    def get_schemas_payload(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    def get_root_objects_payload(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    def get_objects_for_path(
        self, path_str: str, state: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        pass

    @abstractmethod
    def read_object(
        self, path_str: str, state: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        pass

    # ---- Server bootstrap ----
    def make_server(self, host: str = "127.0.0.1", port: int = 8891) -> socketserver.ThreadingTCPServer:
        provider = self

        class JsonLineHandler(socketserver.StreamRequestHandler):  # type: ignore[misc]
            def handle(self) -> None:  # noqa: D401
                line = self.rfile.readline()
                if not line:
                    return
                try:
                    text = line.decode("utf-8").strip()
                    logger.debug("Incoming: %s", text)
                    incoming = json.loads(text)
                except (UnicodeDecodeError, json.JSONDecodeError):
                    self._send_json({"error": "Invalid JSON"})
                    return

                payload = provider.handle_message(incoming)
                self._send_json(payload)

            def _send_json(self, payload: Dict[str, Any]) -> None:
                data = json.dumps(payload, separators=(",", ":")) + "\n"
                self.wfile.write(data.encode("utf-8"))

        class ReusableTCPServer(socketserver.ThreadingTCPServer):  # type: ignore[misc]
            allow_reuse_address = True
            daemon_threads = True

        return ReusableTCPServer((host, port), JsonLineHandler)

    def serve(self, host: str = "127.0.0.1", port: int = 8891) -> None:
        with self.make_server(host, port) as server:
            # Show the path of the script that was actually invoked
            main_module = sys.modules.get("__main__")
            candidate_path: str = getattr(
                main_module, "__file__", sys.argv[0] if sys.argv else __file__
            )
            invoked_path = Path(candidate_path).resolve()
            logger.info("Starting %s", invoked_path)
            logger.info("Provider listening on %s:%s", host, port)
            try:
                server.serve_forever()
            except KeyboardInterrupt:
                pass


# ---- Object model for provider responses ----
@dataclass(frozen=True)
class ProviderObject:
    """Base strongly-typed entry of the provider hierarchy.

    Subclasses declare their label, persisted state fields and fetch mode as
    class attributes, and implement whichever of list_children() and read()
    they support. Serialization is controlled via to_dict().
    """

    title: str

    LABEL: ClassVar[str] = "object"
    SINGLETON: ClassVar[bool] = False
    STATE_FIELDS: ClassVar[Tuple[str, ...]] = ()
    PARENT_OF: ClassVar[Tuple[str, ...]] = ()
    FETCH: ClassVar[Fetch] = Fetch.LAZY
    METADATA_SCHEMA: ClassVar[Optional[Dict[str, Any]]] = None
    ATTRIBUTES: ClassVar[Tuple[str, ...]] = ()

    @property
    def class_name(self) -> str:
        return type(self).__name__

    @property
    def id(self) -> str:
        raise NotImplementedError

    @property
    def segment(self) -> str:
        """Last component of id; unique among siblings."""
        return self.title

    def identity(self) -> Tuple[str, ...]:
        """Stable key used by the host for path construction and caching."""
        raise NotImplementedError

    # ---- Capabilities ----
    def list_children(self) -> Sequence["ProviderObject"]:
        raise NotImplementedError(f"{self.class_name} has no children")

    def read(self) -> str:
        raise NotImplementedError(f"{self.class_name} cannot be read")

    @classmethod
    def can_list(cls) -> bool:
        return cls.list_children is not ProviderObject.list_children

    @classmethod
    def can_read(cls) -> bool:
        return cls.read is not ProviderObject.read

    @classmethod
    def capabilities(cls) -> list[str]:
        caps: list[str] = []
        if cls.can_list():
            caps.append("list")
        if cls.can_read():
            caps.append("read")
        if cls.METADATA_SCHEMA is not None:
            caps.append("metadata")
        return caps

    def prefetched_children(self) -> Optional[Tuple["ProviderObject", ...]]:
        """Children computed at construction, or None when listing is lazy."""
        return None

    def prefetched_content(self) -> Optional[str]:
        """Content computed at construction, or None when reading is lazy."""
        return None

    def attached_metadata(self) -> Optional[Dict[str, Any]]:
        return None

    # ---- State reconstruction ----
    def persisted_state(self) -> Dict[str, Any]:
        state: Dict[str, Any] = {"class": self.class_name, "name": self.title}
        for name in self.STATE_FIELDS:
            state[name] = getattr(self, name)
        return state

    @classmethod
    def describe(cls) -> Dict[str, Any]:
        schema: Dict[str, Any] = {
            "label": cls.LABEL,
            "singleton": cls.SINGLETON,
            "state": list(cls.STATE_FIELDS),
            "parent_of": list(cls.PARENT_OF),
            "capabilities": cls.capabilities(),
            "fetch": cls.FETCH.value,
            "attributes": list(cls.ATTRIBUTES),
        }
        if cls.METADATA_SCHEMA is not None:
            schema["metadata_schema"] = cls.METADATA_SCHEMA
        return schema

    # ---- Serialization ----
    def _extra_fields(self) -> dict[str, object]:
        """Override in subclasses to emit additional fields."""
        return {}

    def object_count(self) -> int:
        """Child count shown to the host; 0 marks a leaf.

        Lazy containers have not been listed yet and report LAZY_CHILDREN_HINT.
        """
        children = self.prefetched_children()
        if children is not None:
            return len(children)
        return LAZY_CHILDREN_HINT if self.can_list() else 0

    def to_dict(self) -> dict[str, object]:
        children = self.prefetched_children()
        payload: dict[str, object] = {
            "class": self.class_name,
            "id": self.id,
            "title": self.title,
            "objects": self.object_count(),
            "state": self.persisted_state(),
        }
        metadata = self.attached_metadata()
        if metadata is not None:
            payload["metadata"] = metadata
        if children is not None:
            payload["children"] = [c.to_dict() for c in children]
        content = self.prefetched_content()
        if content is not None:
            payload["content"] = content
        payload.update(self._extra_fields())
        return payload
