import json
import socket
from typing import Any, Dict, Optional

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8891


def _send(payload: Dict[str, Any], host: str, port: int, timeout: float = 10) -> Dict[str, Any]:
    message = json.dumps(payload, separators=(",", ":")) + "\n"

    with socket.create_connection((host, port), timeout=timeout) as s:
        s.sendall(message.encode("utf-8"))
        # Read one line response
        buf = b""
        while not buf.endswith(b"\n"):
            chunk = s.recv(4096)
            if not chunk:
                break
            buf += chunk

    text = buf.decode("utf-8").strip()
    return json.loads(text) if text else {}


def request_get_info(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> Dict[str, Any]:
    return _send({"method": "GetInfo"}, host, port)


def request_get_root_objects(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> Dict[str, Any]:
    return _send({"method": "GetRootObjects"}, host, port)


def request_get_objects(
    object_id: str,
    state: Optional[Dict[str, Any]] = None,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"method": "GetObjects", "id": object_id}
    if state is not None:
        payload["state"] = state
    return _send(payload, host, port)


def request_read(
    object_id: str,
    state: Optional[Dict[str, Any]] = None,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"method": "Read", "id": object_id}
    if state is not None:
        payload["state"] = state
    return _send(payload, host, port)


if __name__ == "__main__":
    info = request_get_info()
    print("GetInfo:")
    print(json.dumps(info, indent=2))

    response = request_get_root_objects()
    print("\nGetRootObjects:")
    print(json.dumps(response, indent=2))

    for obj in response.get("objects", [])[:1]:
        nodes = request_get_objects(f"{obj['id']}/nodes")
        print(f"\nGetObjects({obj['id']}/nodes):")
        print(json.dumps(nodes, indent=2))
