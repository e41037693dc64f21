import os
import socket

import uvicorn

# Set SIDECAR_HOST=0.0.0.0 to serve beyond localhost (e.g. inside a container)
SIDECAR_HOST = os.getenv("SIDECAR_HOST", "127.0.0.1")
SIDECAR_LOG_LEVEL = os.getenv("SIDECAR_LOG_LEVEL", "warning").lower()


def find_free_port() -> int:
    """Return SIDECAR_PORT when set, otherwise an unused localhost port."""
    requested = os.getenv("SIDECAR_PORT")
    if requested:
        return int(requested)
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def start_server(app, port: int):
    # The desktop shell reads this line from stdout to find the sidecar
    print(f"PORT:{port}", flush=True)
    uvicorn.run(app, host=SIDECAR_HOST, port=port, log_level=SIDECAR_LOG_LEVEL)
