from hardlinkfs.scanner.engine import ScanEngine, ScanProgressSink, ScanRootError
from hardlinkfs.scanner.fingerprint import Fingerprinter, compute_fingerprint, verify_identical
from hardlinkfs.scanner.types import DuplicateGroup, FileIdentity

__all__ = [
    "DuplicateGroup",
    "FileIdentity",
    "Fingerprinter",
    "ScanEngine",
    "ScanProgressSink",
    "ScanRootError",
    "compute_fingerprint",
    "verify_identical",
]
