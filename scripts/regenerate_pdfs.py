"""Régénère côté serveur le rapport PDF des lots terminés."""
from __future__ import annotations

import argparse
import logging

from reception.app import build_store
from reception.core.config import load_settings
from reception.core.errors import ReceptionError
from reception.core.services import LotService
from reception.services.pdf.lot_report import LotReportRenderer, PlaywrightPdfError

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger("regenerate-pdfs")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Régénère les PDF des lots terminés")
    parser.add_argument(
        "--missing-only",
        action="store_true",
        help="Ne traiter que les lots sans PDF enregistré",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    settings = load_settings()
    if settings.LOTS_BACKEND != "sqlite":
        logger.error("Le dépôt en mémoire ne conserve aucun lot entre deux exécutions.")
        return 1
    service = LotService(
        build_store(settings),
        renderer=LotReportRenderer(settings.PDF_RENDERER, settings.PDF_TEMPLATE_PATH),
        media_root=settings.MEDIA_ROOT,
        public_url=settings.PUBLIC_URL,
    )
    lots = [lot for lot in service.list_lots("all") if lot.finished_at is not None]
    if args.missing_only:
        lots = [lot for lot in lots if not lot.pdf_path]

    failures = 0
    for lot in lots:
        try:
            pdf_path = service.store_document(lot.id)
        except (ReceptionError, PlaywrightPdfError, OSError) as exc:
            failures += 1
            logger.warning("Lot %s: échec de la régénération (%s)", lot.id, exc)
            continue
        logger.info("Lot %s: %s", lot.id, pdf_path)

    logger.info("%s PDF régénéré(s), %s échec(s).", len(lots) - failures, failures)
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
