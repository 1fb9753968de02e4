from .main import *
from .errors import *
from .version import __version__

def decode(buffer: bytes, delta: int = enc3.DEFAULT_DELTA): return enc3.decode_buffer(buffer, delta)
def try_decode(buffer: bytes, preferred_delta: int = enc3.DEFAULT_DELTA, candidates=None): return enc3.try_decode(buffer, preferred_delta, candidates)
def parse_container(buffer: bytes): return enc3.parse_container(buffer)
def safe_replace(path, content: bytes, restore_on_failure: bool = False): return enc3.safe_replace(path, content, restore_on_failure=restore_on_failure)
def collect_files(paths=None, root=None): return enc3.collect_files(paths, root=root)

def decrypt_file(
    path,
    preferred_delta: int = enc3.DEFAULT_DELTA,
    candidates=None,
    *,
    restore_on_failure: bool = False
):
    return enc3.decrypt_file(
        path,
        preferred_delta=preferred_delta,
        candidates=candidates,
        restore_on_failure=restore_on_failure
    )

def decrypt_files(
    files,
    workers: int | None = None,
    preferred_delta: int = enc3.DEFAULT_DELTA,
    candidates=None,
    *,
    restore_on_failure: bool = False,
    silent: bool = False
):
    return enc3.decrypt_files(
        files,
        workers=workers,
        preferred_delta=preferred_delta,
        candidates=candidates,
        restore_on_failure=restore_on_failure,
        silent=silent
    )
