"""Disposition codes and the mappings that produce them."""
from enum import Enum
from typing import Dict, Optional

from app.services.call_session.models import CallStatus, QualificationOutcome


class DispositionCode(str, Enum):
    """Terminal outcome codes understood by the dialer."""

    SALE = "SALE"  # Qualified sale
    NQI = "NQI"  # Not qualified (insurance)
    NI = "NI"  # Not interested
    NA = "NA"  # No answer
    AM = "AM"  # Answering machine
    DC = "DC"  # Disconnected, fax tone, fast busy
    B = "B"  # Busy
    DAIR = "DAIR"  # Dead air

    def __str__(self) -> str:
        return self.value


# LIVE_PERSON and UNKNOWN carry no code: a live call is dispositioned from
# its qualification result.
STATUS_DISPOSITIONS: Dict[CallStatus, Optional[DispositionCode]] = {
    CallStatus.LIVE_PERSON: None,
    CallStatus.VOICEMAIL: DispositionCode.AM,
    CallStatus.DEAD_AIR: DispositionCode.DAIR,
    CallStatus.BUSY: DispositionCode.B,
    CallStatus.FAST_BUSY: DispositionCode.B,
    CallStatus.NO_ANSWER: DispositionCode.NA,
    CallStatus.DISCONNECTED: DispositionCode.DC,
    CallStatus.FAX_TONE: DispositionCode.DC,
    CallStatus.IVR: DispositionCode.NA,
    CallStatus.UNKNOWN: None,
}

QUALIFICATION_DISPOSITIONS: Dict[QualificationOutcome, DispositionCode] = {
    QualificationOutcome.QUALIFIED: DispositionCode.SALE,
    QualificationOutcome.NOT_QUALIFIED: DispositionCode.NQI,
}


def status_to_disposition(status: CallStatus) -> Optional[DispositionCode]:
    """Map a detected call outcome to its disposition code."""
    return STATUS_DISPOSITIONS[CallStatus(status)]


def qualification_to_disposition(result: QualificationOutcome) -> DispositionCode:
    """Map a qualification result to its disposition code."""
    return QUALIFICATION_DISPOSITIONS[QualificationOutcome(result)]
