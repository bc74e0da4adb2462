import socket


def free_address(host: str = '127.0.0.1') -> str:
    """host:port with a port nothing is listening on right now"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return f'{host}:{s.getsockname()[1]}'
