import json
import socket
from typing import Optional

MAX_MESSAGE_SIZE = 10 * 1024 * 1024  # 10 MB

# 4-byte big-endian length prefix + UTF-8 JSON body.
LENGTH_PREFIX_SIZE = 4


def recv_exactly(sock: socket.socket, n: int) -> Optional[bytes]:
    """Read exactly n bytes from sock. Returns None if the connection is closed
    cleanly or a timeout occurs with no data read. Raises ConnectionError if a
    timeout occurs after a partial read (the stream is now corrupted)."""
    data = bytearray()
    while len(data) < n:
        try:
            packet = sock.recv(n - len(data))
        except socket.timeout:
            if data:
                raise ConnectionError(f"Timeout after reading {len(data)}/{n} bytes")
            return None
        if not packet:
            return None
        data.extend(packet)
    return bytes(data)


def encode_frame(payload: dict) -> bytes:
    body = json.dumps(payload).encode()
    return len(body).to_bytes(LENGTH_PREFIX_SIZE, byteorder='big') + body


def read_frame(sock: socket.socket) -> Optional[dict]:
    """Read one framed JSON object. Returns None when the peer closed the stream."""
    length_data = recv_exactly(sock, LENGTH_PREFIX_SIZE)
    if not length_data:
        return None
    message_length = int.from_bytes(length_data, byteorder='big')
    if message_length > MAX_MESSAGE_SIZE:
        raise ConnectionError(f"Message too large: {message_length} bytes")
    message_data = recv_exactly(sock, message_length)
    if message_data is None:
        raise ConnectionError("Failed to read complete message")
    return json.loads(message_data.decode())
