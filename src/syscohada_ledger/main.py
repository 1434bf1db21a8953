"""Point d'entrée CLI de syscohada-ledger."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from syscohada_ledger.config.loader import load_config
from syscohada_ledger.models import ConfigError, IntegrityError, NoResultError, ParseError, Period
from syscohada_ledger.pipeline import PipelineOrchestrator

logger = logging.getLogger("syscohada_ledger.main")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _exercice(value: str) -> Period:
    if len(value) != 4 or not value.isdigit():
        raise argparse.ArgumentTypeError(f"Exercice invalide '{value}' (attendu : AAAA)")
    return Period.exercice(value)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse les arguments CLI."""
    parser = argparse.ArgumentParser(
        prog="syscohada-ledger",
        description="Balance, bilan et compte de résultat SYSCOHADA à partir d'un fichier d'écritures",
    )
    parser.add_argument("journal_file", help="Fichier CSV des écritures")
    parser.add_argument("output_file", help="Fichier Excel de sortie")
    parser.add_argument("--exercice", required=True, type=_exercice, help="Exercice civil (AAAA)")
    parser.add_argument("--releve", default=None, help="Relevé bancaire CSV à rapprocher")
    parser.add_argument(
        "--config-dir",
        default="./config/",
        help="Répertoire de configuration YAML (défaut : ./config/)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=VALID_LOG_LEVELS,
        help="Niveau de log (défaut : INFO)",
    )
    return parser.parse_args(args)


def main(args: list[str] | None = None) -> None:
    """Point d'entrée principal."""
    parsed = parse_args(args)

    logging.basicConfig(
        level=getattr(logging, parsed.log_level),
        format=LOG_FORMAT,
    )

    config_dir = Path(parsed.config_dir)
    try:
        config = load_config(config_dir)
    except ConfigError as e:
        logger.error("Erreur de configuration : %s", e)
        sys.exit(2)

    try:
        orchestrator = PipelineOrchestrator()
        orchestrator.run(
            journal_path=Path(parsed.journal_file),
            output_path=Path(parsed.output_file),
            config=config,
            period=parsed.exercice,
            releve_path=Path(parsed.releve) if parsed.releve else None,
        )
    except (NoResultError, ParseError) as e:
        print(f"ERREUR : {e}")
        sys.exit(3)
    except IntegrityError as e:
        logger.error("Incohérence comptable : %s", e)
        sys.exit(4)
    except Exception:
        logger.exception("Erreur inattendue")
        sys.exit(1)


if __name__ == "__main__":
    main()
