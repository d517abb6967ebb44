from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import logging
import time

import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from aides_eligibility.config import (
    ELIGIBILITY_EXPORT_PATH,
    ELIGIBILITY_ORDER_COLUMN,
    ELIGIBILITY_TABLE,
    FETCH_BACKOFF_SECONDS,
    FETCH_RETRIES,
    PAGE_SIZE,
    REQUEST_TIMEOUT_SECONDS,
    SUPABASE_ANON_KEY,
    SUPABASE_URL,
)
from aides_eligibility.core.errors import DataFetchError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

RETRY_STATUSES = (429, 500, 502, 503, 504)


def _build_retry_session(
    retries: int = FETCH_RETRIES,
    backoff_factor: float = FETCH_BACKOFF_SECONDS,
) -> requests.Session:
    """
    Requests Session that retries idempotent GETs on connection errors and
    on 429/5xx. Supabase free-tier projects can be slow to wake up.
    """
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


def _sort_records(records: List[Row], order_column: str) -> List[Row]:
    if not records:
        return []
    df = pd.DataFrame.from_records(records)
    if order_column in df.columns:
        key = pd.to_numeric(df[order_column], errors="coerce").fillna(0)
        df = df.assign(__order__=key).sort_values("__order__", kind="mergesort").drop(columns="__order__")
    # NaN -> None so callers see the same blanks the REST API returns
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


class SupabaseRowSource:
    """
    Fetch the eligibility rule table through the Supabase REST (PostgREST) API.

    The source owns its HTTP session; construct one at startup and pass it to
    whoever needs rows.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = ELIGIBILITY_TABLE,
        *,
        order_column: str = ELIGIBILITY_ORDER_COLUMN,
        page_size: int = PAGE_SIZE,
        max_rows: int = 50_000,
        timeout_seconds: int = REQUEST_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        base_url = (base_url or "").strip().rstrip("/")
        if not base_url:
            raise DataFetchError("Missing Supabase URL. Expected SUPABASE_URL to be set.")
        if not (table or "").strip():
            raise DataFetchError("Missing eligibility table name.")

        self.endpoint = f"{base_url}/rest/v1/{table.strip()}"
        self.api_key = (api_key or "").strip()
        self.order_column = order_column
        self.page_size = int(page_size) if int(page_size) > 0 else 1_000
        self.max_rows = int(max_rows)
        self.timeout_seconds = timeout_seconds
        self.session = session or _build_retry_session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get_page(self, offset: int, limit: int) -> List[Row]:
        params: Dict[str, Any] = {
            "select": "*",
            "order": f"{self.order_column}.asc",
            "offset": int(offset),
            "limit": int(limit),
        }

        try:
            resp = self.session.get(
                self.endpoint, params=params, headers=self._headers(), timeout=self.timeout_seconds
            )
        except requests.RequestException as exc:
            raise DataFetchError(f"HTTP error while fetching {self.endpoint}: {exc}") from exc

        if resp.status_code >= 400:
            preview = (resp.text or "")[:200]
            raise DataFetchError(
                f"Supabase returned status {resp.status_code} for {self.endpoint}. Preview: {preview}"
            )

        try:
            data = resp.json()
        except ValueError as exc:
            preview = (resp.text or "")[:200]
            raise DataFetchError(
                f"Non-JSON response from Supabase (status={resp.status_code}). Preview: {preview}"
            ) from exc

        if not isinstance(data, list):
            raise DataFetchError(f"Unexpected Supabase response type: {type(data)}")
        if any(not isinstance(r, dict) for r in data):
            raise DataFetchError("Supabase response contains non-object rows")

        return data

    def fetch_rows(self) -> List[Row]:
        """
        Fetch every row of the rule table, ordered ascending by step (Etape).

        Pages with limit/offset until a short page comes back or max_rows is
        reached. Raises DataFetchError on any transport or shape problem.
        """
        all_records: List[Row] = []
        offset = 0

        # Hard cap to avoid runaway loops if the API ignores offset
        hard_page_cap = max(1, (self.max_rows // self.page_size) + 5)

        t0 = time.perf_counter()
        pages = 0
        while pages < hard_page_cap:
            pages += 1

            limit = min(self.page_size, self.max_rows - len(all_records))
            if limit <= 0:
                break

            recs = self._get_page(offset, limit)
            if not recs:
                break

            all_records.extend(recs)
            offset += len(recs)

            # Fewer than requested: we reached the end
            if len(recs) < limit:
                break

        logger.info(
            "Fetched %d eligibility rows from %s in %d page(s) (%.2fs).",
            len(all_records), self.endpoint, pages, time.perf_counter() - t0,
        )
        return _sort_records(all_records, self.order_column)


class FileRowSource:
    """
    Read an offline export of the eligibility table (CSV or Excel).
    """

    def __init__(self, path: Union[str, Path], order_column: str = ELIGIBILITY_ORDER_COLUMN) -> None:
        self.path = Path(path)
        self.order_column = order_column

    def fetch_rows(self) -> List[Row]:
        if not self.path.exists():
            raise DataFetchError(f"Eligibility export not found: {self.path}")

        suffix = self.path.suffix.lower()
        try:
            if suffix == ".csv":
                df = pd.read_csv(self.path, dtype=str, keep_default_na=False)
            elif suffix in (".xlsx", ".xls"):
                df = pd.read_excel(self.path, dtype=str, keep_default_na=False)
            else:
                raise DataFetchError(f"Unsupported export format {suffix!r} for {self.path}")
        except DataFetchError:
            raise
        except (OSError, ValueError, ImportError) as exc:
            raise DataFetchError(f"Could not read eligibility export {self.path}: {exc}") from exc

        logger.info("Loaded %d eligibility rows from %s", len(df), self.path)
        return _sort_records(df.to_dict(orient="records"), self.order_column)


RowSource = Union[SupabaseRowSource, FileRowSource]


def row_source_from_config() -> RowSource:
    """Supabase when SUPABASE_URL is configured, otherwise the local export."""
    if SUPABASE_URL:
        return SupabaseRowSource(SUPABASE_URL, SUPABASE_ANON_KEY, ELIGIBILITY_TABLE)
    logger.info("SUPABASE_URL not set; using local export %s", ELIGIBILITY_EXPORT_PATH)
    return FileRowSource(ELIGIBILITY_EXPORT_PATH)
