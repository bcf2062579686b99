"""Fire-and-poll tracking of an AI permit analysis.

The server answers ``POST /analyze`` right away; the result arrives later
through the n8n callback. The tracker polls the permit's latest analysis run
until it reports ``done`` or ``failed``, the deadline passes, or the caller
cancels.
"""

import logging
import threading
import time
from typing import Callable, Optional

import httpx

from ptw.client.api import ApiError, PermitApiClient, PtwClientError
from ptw.client.cache import ResourceChanged

logger = logging.getLogger("ptw.client.analysis")

POLL_INTERVAL_SECONDS = 3.0
TIMEOUT_SECONDS = 180.0


class AnalysisPreconditionError(PtwClientError):
    pass


class AnalysisTimeoutError(PtwClientError):
    pass


class AnalysisFailedError(PtwClientError):
    pass


class AnalysisCancelled(PtwClientError):
    pass


class AnalysisTracker:
    def __init__(
        self,
        client: PermitApiClient,
        interval: float = POLL_INTERVAL_SECONDS,
        timeout: float = TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], object]] = None,
    ) -> None:
        self.client = client
        self.interval = interval
        self.timeout = timeout
        self._clock = clock
        self._cancelled = threading.Event()
        self._sleep = sleep or self._cancelled.wait

    def cancel(self) -> None:
        """Stop observing; the analysis itself keeps running on the server."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def ensure_webhook_configured(self) -> None:
        configs = self.client.list_webhook_configs() or []
        if not any(config.get("isActive") for config in configs):
            raise AnalysisPreconditionError(
                "Keine aktive Webhook-Konfiguration gefunden. Bitte konfigurieren Sie zuerst einen n8n-Webhook."
            )

    def run(self, permit_id: int) -> list[dict]:
        """Start an analysis and block until its suggestions are available."""
        self.ensure_webhook_configured()
        started = self._clock()
        response = self.client.analyze_permit(permit_id) or {}
        analysis_id = response.get("analysisId")
        logger.info("analysis started permit=%s analysis=%s", permit_id, analysis_id)

        while True:
            self._sleep(self.interval)
            if self._cancelled.is_set():
                raise AnalysisCancelled("KI-Analyse abgebrochen")
            elapsed = self._clock() - started
            if elapsed > self.timeout:
                raise AnalysisTimeoutError(
                    f"KI-Analyse hat nach {int(self.timeout)} Sekunden kein Ergebnis geliefert"
                )
            try:
                latest = self.client.get_analysis(permit_id)
            except (ApiError, httpx.HTTPError) as exc:
                logger.warning("analysis poll failed permit=%s error=%s", permit_id, exc)
                continue
            if analysis_id is not None and latest.get("id") != analysis_id:
                continue
            status = latest.get("status")
            if status == "done":
                logger.info("analysis done permit=%s after %.0fs", permit_id, elapsed)
                if self.client.cache is not None:
                    self.client.cache.publish(ResourceChanged("suggestions", permit_id))
                return [
                    suggestion
                    for suggestion in self.client.list_suggestions(permit_id)
                    if suggestion.get("status") == "pending"
                ]
            if status == "failed":
                raise AnalysisFailedError(latest.get("error") or "KI-Analyse fehlgeschlagen")
