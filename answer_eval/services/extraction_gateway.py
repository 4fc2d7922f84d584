"""
Extraction Gateway
Runs an ordered list of extraction providers over a list of image references.

One result per input image, in input order. The first provider sees every
image; each later provider only sees the positions still failing. A provider
that is unavailable as a whole is skipped, so the next one gets the full
remaining set. The call itself never raises.
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import List, Optional, Sequence

from answer_eval.core.config import settings
from answer_eval.core.errors import ProviderUnavailable
from answer_eval.schemas.evaluation import ExtractedText
from answer_eval.schemas.submission import AnswerImage
from answer_eval.services.extraction_providers import (
    ExtractionProvider,
    build_providers,
    failed,
)

logger = logging.getLogger(__name__)

# extra wait on top of a provider's own timeout before giving up on a call
_TIMEOUT_GRACE_SECONDS = 5.0


def unavailable_placeholder(position: int) -> ExtractedText:
    return failed(
        None,
        f"text extraction is unavailable for image {position + 1}; "
        "please ensure the image is clear and contains readable text",
    )


class ExtractionGateway:
    def __init__(
        self,
        providers: Sequence[ExtractionProvider],
        *,
        max_workers: int | None = None,
    ):
        self.providers = list(providers)
        self.max_workers = max_workers or settings.EXTRACTION_MAX_WORKERS

    def extract(self, refs: Sequence[AnswerImage]) -> List[ExtractedText]:
        if not refs:
            return []

        results: List[Optional[ExtractedText]] = [None] * len(refs)
        pending = list(range(len(refs)))

        for provider in self.providers:
            if not pending:
                break
            try:
                provider.ensure_available()
            except ProviderUnavailable as exc:
                logger.warning(f"Extraction provider {provider.name} unavailable: {exc}")
                continue

            if len(pending) < len(refs):
                logger.info(
                    f"Retrying {len(pending)} failed image(s) {[i + 1 for i in pending]} "
                    f"with {provider.name}"
                )
            outcomes = self._run_provider(provider, [refs[i] for i in pending])

            still_failing = []
            for index, outcome in zip(pending, outcomes):
                results[index] = outcome
                if not outcome.success:
                    still_failing.append(index)
            recovered = len(pending) - len(still_failing)
            if recovered and len(pending) < len(refs):
                logger.info(f"{provider.name} recovered {recovered} image(s)")
            pending = still_failing

        if any(result is None for result in results):
            logger.warning("No extraction provider available; returning placeholders")

        return [
            result if result is not None else unavailable_placeholder(position)
            for position, result in enumerate(results)
        ]

    def _run_provider(
        self, provider: ExtractionProvider, refs: List[AnswerImage]
    ) -> List[ExtractedText]:
        """
        Per-image calls run concurrently; output order follows ``refs``.
        A single image takes the same path so it gets the deadline too.
        """
        workers = min(self.max_workers, len(refs))
        rounds = math.ceil(len(refs) / workers)
        deadline = time.monotonic() + rounds * (provider.timeout + _TIMEOUT_GRACE_SECONDS)

        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"extract-{provider.name}")
        try:
            futures = [pool.submit(provider.extract, ref) for ref in refs]
            outcomes = []
            for ref, future in zip(refs, futures):
                try:
                    outcomes.append(future.result(timeout=max(0.0, deadline - time.monotonic())))
                except FutureTimeout:
                    logger.warning(f"{provider.name}: no answer for {ref.key} before deadline")
                    outcomes.append(failed(provider.name, "timed out waiting for provider"))
                except Exception as exc:
                    logger.error(f"{provider.name}: unexpected error for {ref.key}: {exc}", exc_info=True)
                    outcomes.append(failed(provider.name, str(exc)))
        finally:
            # don't hold the request on calls that already missed the deadline
            pool.shutdown(wait=False, cancel_futures=True)
        return outcomes


_gateway_instance: ExtractionGateway | None = None


def get_extraction_gateway() -> ExtractionGateway:
    global _gateway_instance
    if _gateway_instance is None:
        _gateway_instance = ExtractionGateway(build_providers())
    return _gateway_instance
