"""Typed failures raised while opening, streaming and finalizing a conversion."""

from __future__ import annotations

from enum import Enum


class FailureReason(str, Enum):
    """Terminal failure kinds recorded on a failed job."""

    INPUT_NOT_FOUND = "InputNotFound"
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    READER_START_ERROR = "ReaderStartError"
    DECODE_ERROR = "DecodeError"
    FRAME_COUNT_MISMATCH = "FrameCountMismatch"
    WRITE_ERROR = "WriteError"
    FINALIZE_ERROR = "FinalizeError"
    STALLED = "Stalled"
    CANCELLED = "Cancelled"
    INTERNAL_ERROR = "InternalError"


class ConversionError(RuntimeError):
    """Base class for every fatal conversion failure."""

    reason: FailureReason = FailureReason.INTERNAL_ERROR


class InputNotFound(ConversionError, FileNotFoundError):
    reason = FailureReason.INPUT_NOT_FOUND


class UnsupportedFormat(ConversionError, ValueError):
    reason = FailureReason.UNSUPPORTED_FORMAT


class ReaderStartError(ConversionError):
    reason = FailureReason.READER_START_ERROR


class DecodeError(ConversionError):
    reason = FailureReason.DECODE_ERROR


class FrameCountMismatch(ConversionError):
    reason = FailureReason.FRAME_COUNT_MISMATCH


class WriteError(ConversionError):
    """The sink failed while accepting samples (not a transient rejection)."""

    reason = FailureReason.WRITE_ERROR


class FinalizeError(ConversionError):
    reason = FailureReason.FINALIZE_ERROR


class StalledError(ConversionError):
    reason = FailureReason.STALLED


class Cancelled(ConversionError):
    reason = FailureReason.CANCELLED


class DestinationBusy(ConversionError):
    """Another active job already owns the output destination."""


def reason_of(exc: BaseException) -> FailureReason:
    """Map any exception to the failure reason stored on the job."""

    if isinstance(exc, ConversionError):
        return exc.reason
    return FailureReason.INTERNAL_ERROR
