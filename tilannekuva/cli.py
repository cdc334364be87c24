"""Fetch one layer with the same stack the service uses and print it as GeoJSON."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Callable, Dict, List, Optional

from .config import ConfigurationError, Settings
from .providers.sotkanet import INDICATORS
from .services.layers import LayerService, build_layer_service


LAYERS = (
    "snow",
    "ice",
    "weather",
    "road_weather",
    "observations",
    "traffic",
    "trains",
    "transit",
    "energy",
    "population",
    "crime",
    "indicator",
    "icebreakers",
    "radar",
    "forecast",
    "status",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tilannekuva", description=__doc__)
    parser.add_argument("layer", choices=LAYERS, help="Layer to fetch")
    parser.add_argument("--year", type=int, help="Statistics year (population, crime, indicator)")
    parser.add_argument(
        "--category",
        action="append",
        dest="categories",
        help="ICCS crime category code, may be repeated (default SSS)",
    )
    parser.add_argument(
        "--indicator",
        choices=sorted(INDICATORS),
        default="5641",
        help="Sotkanet indicator id (default 5641, morbidity index)",
    )
    parser.add_argument("--pretty", action="store_true", help="Indent the JSON output")
    return parser


def _fetch(service: LayerService, args: argparse.Namespace) -> Dict[str, Any]:
    if args.layer == "status":
        return service.status()
    if args.layer == "population":
        return service.population(args.year or 2024).to_dict()
    if args.layer == "crime":
        return service.crime(args.year or 2023, args.categories or ("SSS",)).to_dict()
    if args.layer == "indicator":
        return service.indicator(args.indicator, args.year or 2023).to_dict()
    method: Callable = getattr(service, args.layer)
    return method().to_dict()


def main(argv: Optional[List[str]] = None, service: Optional[LayerService] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = Settings.from_env()
    except ConfigurationError as exc:
        print(f"tilannekuva: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    service = service or build_layer_service(settings)
    try:
        payload = _fetch(service, args)
    finally:
        # Let pending cache writes land before the process exits.
        service.cache.close()
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2 if args.pretty else None)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
