from .records import UNKNOWN_LENGTH, PartRecord, UploadRecord

__all__ = ["UNKNOWN_LENGTH", "PartRecord", "UploadRecord"]
