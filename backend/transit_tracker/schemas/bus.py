import datetime

from pydantic import BaseModel


class BusMarker(BaseModel):
    id: int
    next_stop_seq: int
    next_stop_id: str
    prev_stop_seq: int | None = None
    prev_stop_id: str | None = None
    progress: float


class EtaInfo(BaseModel):
    eta: datetime.datetime | None = None
    eta_seq: int
    remark: str | None = None
    destination: str | None = None


class StopTimelineEntry(BaseModel):
    stop_id: str
    seq: int
    name_en: str
    name_tc: str = ""
    bus_count: int = 0
    primary_eta: datetime.datetime | None = None
    minutes_until: int | None = None
    etas: list[EtaInfo] = []


class DirectionInfo(BaseModel):
    direction: str
    origin: str | None = None
    destination: str | None = None


class DirectionUpdate(BaseModel):
    direction: str


class BusSnapshot(BaseModel):
    type: str = "snapshot"
    route: str
    direction: str
    last_updated: datetime.datetime | None = None
    highlight_seq: int | None = None
    presence: dict[str, int] = {}
    buses: list[BusMarker]


class BusUpdate(BusSnapshot):
    type: str = "update"
