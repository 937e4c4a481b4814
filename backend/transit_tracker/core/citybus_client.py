"""Async client for the Citybus real-time ETA open data API."""

import asyncio
import datetime
import logging
from dataclasses import dataclass, field

import httpx

from transit_tracker.config import settings

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
RETRY_BACKOFF = [1, 2, 4]  # seconds between retries

DIRECTIONS = ("inbound", "outbound")
# Direction code used by ETA entries
DIRECTION_TO_BOUND = {"inbound": "I", "outbound": "O"}


@dataclass
class EtaEntry:
    eta: str | None  # ISO-8601, null when the feed has no estimate
    eta_seq: int
    remark: str | None = None
    destination: str | None = None


@dataclass
class StopWithEta:
    stop_id: str
    seq: int
    name_en: str
    name_tc: str = ""
    lat: float | None = None
    lon: float | None = None
    etas: list[EtaEntry] = field(default_factory=list)


@dataclass
class StopDetail:
    id: str
    name_en: str
    name_tc: str
    lat: float | None
    lon: float | None


@dataclass
class DirectionMeta:
    origin: str
    destination: str


def _parse_coord(raw) -> float | None:
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


class CitybusClient:
    """Fetches route stops and per-stop ETAs for a single route."""

    def __init__(
        self,
        base_url: str | None = None,
        company_code: str | None = None,
        route_number: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.company_code = company_code or settings.company_code
        self.route_number = route_number or settings.route_number
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.citybus_base_url,
            timeout=15.0,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        # Stop names and coordinates rarely change: cache for the process lifetime
        self._stop_cache: dict[str, StopDetail] = {}

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_with_retry(self, path: str, label: str) -> dict | None:
        """GET a JSON document with retry and exponential backoff."""
        for attempt in range(MAX_RETRIES + 1):
            try:
                resp = await self._client.get(path)
                resp.raise_for_status()
                return resp.json()
            except (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES:
                    wait = RETRY_BACKOFF[attempt]
                    logger.warning(
                        "%s attempt %d/%d failed (%s), retrying in %ds",
                        label, attempt + 1, MAX_RETRIES + 1, type(e).__name__, wait,
                    )
                    await asyncio.sleep(wait)
                else:
                    logger.error("%s failed after %d attempts: %s", label, MAX_RETRIES + 1, e)
                    return None
            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500 and attempt < MAX_RETRIES:
                    wait = RETRY_BACKOFF[attempt]
                    logger.warning(
                        "%s attempt %d/%d got HTTP %d, retrying in %ds",
                        label, attempt + 1, MAX_RETRIES + 1, e.response.status_code, wait,
                    )
                    await asyncio.sleep(wait)
                else:
                    logger.error("Failed to fetch %s from Citybus: %s", label, e)
                    return None
            except Exception:
                logger.exception("Failed to fetch %s from Citybus", label)
                return None
        return None

    async def fetch_route_info(self) -> dict[str, DirectionMeta] | None:
        """Origin/destination labels for both directions of the route."""
        data = await self._get_with_retry(
            f"/route/{self.company_code}/{self.route_number}", "route info"
        )
        if not data or not isinstance(data.get("data"), dict):
            return None
        info = data["data"]
        orig = str(info.get("orig_en") or "")
        dest = str(info.get("dest_en") or "")
        return {
            "outbound": DirectionMeta(origin=orig, destination=dest),
            "inbound": DirectionMeta(origin=dest, destination=orig),
        }

    async def _fetch_stop_detail(self, stop_id: str) -> StopDetail | None:
        cached = self._stop_cache.get(stop_id)
        if cached:
            return cached

        data = await self._get_with_retry(f"/stop/{stop_id}", f"stop {stop_id}")
        if not data or not isinstance(data.get("data"), dict):
            return None
        item = data["data"]
        detail = StopDetail(
            id=str(item.get("stop") or stop_id),
            name_en=str(item.get("name_en") or ""),
            name_tc=str(item.get("name_tc") or ""),
            lat=_parse_coord(item.get("lat")),
            lon=_parse_coord(item.get("long")),
        )
        self._stop_cache[stop_id] = detail
        return detail

    async def _fetch_stop_etas(self, stop_id: str, bound: str) -> list[EtaEntry] | None:
        data = await self._get_with_retry(
            f"/eta/{self.company_code}/{stop_id}/{self.route_number}", f"ETA {stop_id}"
        )
        if data is None:
            return None

        entries = []
        for item in data.get("data") or []:
            if item.get("dir") != bound or item.get("route") != self.route_number:
                continue
            try:
                entries.append(EtaEntry(
                    eta=item.get("eta") or None,
                    eta_seq=int(item["eta_seq"]),
                    remark=item.get("rmk_en") or None,
                    destination=item.get("dest_en") or None,
                ))
            except (KeyError, ValueError, TypeError) as e:
                logger.debug("Skipping malformed ETA record for stop %s: %s", stop_id, e)
        entries.sort(key=lambda e: e.eta_seq)
        return entries

    async def _fetch_stop(self, stop_id: str, seq: int, bound: str) -> StopWithEta | None:
        detail, etas = await asyncio.gather(
            self._fetch_stop_detail(stop_id),
            self._fetch_stop_etas(stop_id, bound),
        )
        if etas is None:
            return None
        return StopWithEta(
            stop_id=stop_id,
            seq=seq,
            name_en=detail.name_en if detail else f"Stop {stop_id}",
            name_tc=detail.name_tc if detail else "",
            lat=detail.lat if detail else None,
            lon=detail.lon if detail else None,
            etas=etas,
        )

    async def fetch_stops_with_eta(self, direction: str) -> list[StopWithEta] | None:
        """All stops of the route in ``direction`` with their live ETAs.

        Returns None when the feed could not be read; callers keep their
        previous state in that case.
        """
        if direction not in DIRECTION_TO_BOUND:
            raise ValueError(f"Unknown direction: {direction}")

        data = await self._get_with_retry(
            f"/route-stop/{self.company_code}/{self.route_number}/{direction}", "route stops"
        )
        if data is None:
            return None

        route_stops = []
        for item in data.get("data") or []:
            try:
                route_stops.append((int(item["seq"]), str(item["stop"])))
            except (KeyError, ValueError, TypeError) as e:
                logger.debug("Skipping malformed route-stop record: %s", e)
        route_stops.sort(key=lambda rs: rs[0])

        bound = DIRECTION_TO_BOUND[direction]
        results = await asyncio.gather(
            *(self._fetch_stop(stop_id, seq, bound) for seq, stop_id in route_stops)
        )
        if any(r is None for r in results):
            logger.error("ETA fetch incomplete for route %s %s", self.route_number, direction)
            return None

        logger.info(
            "Fetched %d stops (%d ETAs) for route %s %s",
            len(results), sum(len(s.etas) for s in results), self.route_number, direction,
        )
        return list(results)


MOCK_DIRECTION_META = {
    "outbound": DirectionMeta(origin="Downtown Terminal", destination="Airport Terminal"),
    "inbound": DirectionMeta(origin="Airport Terminal", destination="Downtown Terminal"),
}

_MOCK_STOPS = [
    ("mock-1", "Downtown Terminal", "市中心總站"),
    ("mock-2", "Central Park", "中央公園"),
    ("mock-3", "University Campus", "大學校園"),
    ("mock-4", "Shopping District", "購物區"),
    ("mock-5", "Medical Center", "醫療中心"),
    ("mock-6", "Industrial Park", "工業園"),
    ("mock-7", "Airport Terminal", "機場航站"),
]
# Minutes from the base instant at which each mock bus reaches each stop
_MOCK_BUS_OFFSETS_MIN = {
    1: [-2, 4, 10, 16, 22, 30, 38],
    2: [-14, -6, 2, 10, 18, 26, 34],
}


def build_mock_stops(base: datetime.datetime) -> list[StopWithEta]:
    """Seven stops served by two buses at fixed offsets around ``base``."""
    stops = []
    for index, (stop_id, name_en, name_tc) in enumerate(_MOCK_STOPS):
        etas = [
            EtaEntry(
                eta=(base + datetime.timedelta(minutes=offsets[index])).isoformat(),
                eta_seq=bus_id,
            )
            for bus_id, offsets in _MOCK_BUS_OFFSETS_MIN.items()
        ]
        stops.append(StopWithEta(
            stop_id=stop_id, seq=index + 1, name_en=name_en, name_tc=name_tc, etas=etas,
        ))
    return stops


class MockCitybusClient:
    """Offline stand-in for CitybusClient, generated once at startup."""

    def __init__(self, base: datetime.datetime | None = None) -> None:
        self.route_number = settings.route_number
        self._stops = build_mock_stops(base or datetime.datetime.now(datetime.timezone.utc))

    async def close(self) -> None:
        return None

    async def fetch_route_info(self) -> dict[str, DirectionMeta] | None:
        return dict(MOCK_DIRECTION_META)

    async def fetch_stops_with_eta(self, direction: str) -> list[StopWithEta] | None:
        if direction not in DIRECTION_TO_BOUND:
            raise ValueError(f"Unknown direction: {direction}")
        logger.debug("Serving %d mock stops", len(self._stops))
        return self._stops
