"""CLI entrypoint for geomap."""

from __future__ import annotations

import argparse
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Sequence

from .config import AppConfig, load_config
from .errors import GeographyError
from .geographies import GeographyFetcher, get_features, get_mesh, is_url
from .path import graticule
from .preparation import prepare_features, prepare_mesh
from .projection import PROJECTION_REGISTRY, available_projections
from .state import MapState
from .util import read_json, setup_logging, write_json
from .validation import configure_validation
from .zoompan import ZoomPanController

LOGGER = logging.getLogger("geomap.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geomap",
        description="Map projection, geometry preparation, and zoom/pan tools.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default=None, help="Path to YAML config (defaults apply when omitted).")
        p.add_argument("--log-file", default=None, help="Also write logs to this file.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    def add_map_overrides(p: argparse.ArgumentParser) -> None:
        p.add_argument("--projection", default=None, help="Projection name, e.g. geoMercator.")
        p.add_argument("--width", type=int, default=None, help="Viewport width in pixels.")
        p.add_argument("--height", type=int, default=None, help="Viewport height in pixels.")

    projections_p = subparsers.add_parser("projections", help="List available projections.")
    add_common(projections_p)

    prepare_p = subparsers.add_parser(
        "prepare",
        help="Load a TopoJSON/GeoJSON file or URL and write projected SVG paths as JSON.",
    )
    add_common(prepare_p)
    add_map_overrides(prepare_p)
    prepare_p.add_argument("source", help="Geography file path or http(s) URL.")
    prepare_p.add_argument("--output", required=True, help="Output JSON path.")
    prepare_p.add_argument("--sphere", action="store_true", help="Include the globe outline path.")
    prepare_p.add_argument("--graticule", action="store_true", help="Include a 10-degree graticule path.")

    view_p = subparsers.add_parser("view", help="Compute the zoom transform for a center and zoom.")
    add_common(view_p)
    add_map_overrides(view_p)
    view_p.add_argument("--center", type=float, nargs=2, metavar=("LON", "LAT"), default=(0.0, 0.0))
    view_p.add_argument("--zoom", type=float, default=1.0)
    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    setup_logging(Path(args.log_file) if args.log_file else None, verbose=args.verbose)
    cfg = load_config(args.config) if args.config else AppConfig()
    configure_validation(**asdict(cfg.validation))
    return cfg


def _build_state(cfg: AppConfig, args: argparse.Namespace) -> MapState:
    state = MapState.from_config(cfg.map)
    state.update(
        width=args.width,
        height=args.height,
        projection=args.projection,
    )
    return state


def _run_projections() -> int:
    for name in available_projections():
        spec = PROJECTION_REGISTRY[name]
        capabilities = ", ".join(sorted(spec.capabilities))
        aliases = ", ".join(spec.aliases) or "-"
        LOGGER.info("%-26s scale=%-9.3f aliases=%s capabilities=%s", name, spec.default_scale, aliases, capabilities)
    return 0


def _load_geography(cfg: AppConfig, source: str) -> Any:
    if is_url(source) and source.split(":", 1)[0].casefold() in ("http", "https"):
        return GeographyFetcher(cfg.fetch).fetch(source)
    return read_json(Path(source))


def _run_prepare(cfg: AppConfig, args: argparse.Namespace) -> int:
    try:
        state = _build_state(cfg, args)
        geography = _load_geography(cfg, str(args.source))
        features = get_features(geography)
        mesh = get_mesh(geography)
        path = state.path
        prepared = prepare_features(features, path)
        prepared_mesh = prepare_mesh(
            mesh.outline if mesh else None,
            mesh.borders if mesh else None,
            path,
        )
    except GeographyError as exc:
        LOGGER.error("Prepare failed (%s): %s", exc.kind.value, exc.message)
        return 1
    except (OSError, ValueError) as exc:
        LOGGER.error("Could not read geography %s: %s", args.source, exc)
        return 1

    payload: dict[str, Any] = {
        "projection": getattr(state.projection, "name", cfg.map.projection),
        "width": state.width,
        "height": state.height,
        "geographies": [item.to_dict() for item in prepared],
        **prepared_mesh.to_dict(),
    }
    if args.sphere:
        payload["sphere"] = path.sphere()
    if args.graticule:
        payload["graticule"] = path(graticule())
    output = Path(args.output)
    write_json(output, payload)
    LOGGER.info(
        "Prepared %d of %d features (outline=%s, borders=%s) -> %s",
        len(prepared),
        len(features),
        "yes" if prepared_mesh.outline else "no",
        "yes" if prepared_mesh.borders else "no",
        output,
    )
    return 0


def _run_view(cfg: AppConfig, args: argparse.Namespace) -> int:
    try:
        state = _build_state(cfg, args)
        controller = ZoomPanController(
            state,
            center=tuple(args.center),
            zoom=float(args.zoom),
            scale_extent=cfg.zoom.scale_extent,
            translate_extent=cfg.zoom.translate_extent,
        )
    except GeographyError as exc:
        LOGGER.error("View failed (%s): %s", exc.kind.value, exc.message)
        return 1
    try:
        LOGGER.info("transform: %s", controller.transform_string)
        position = controller.position
        if position is None:
            LOGGER.warning("Viewport center is outside the projection's domain.")
        else:
            LOGGER.info(
                "center: lon=%.6f lat=%.6f zoom=%.3f",
                position.coordinates.lon,
                position.coordinates.lat,
                position.zoom,
            )
    finally:
        controller.close()
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    try:
        cfg = _load_and_setup(args)
    except (GeographyError, FileNotFoundError) as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2
    command = str(args.command)
    if command == "projections":
        return _run_projections()
    if command == "prepare":
        return _run_prepare(cfg, args)
    if command == "view":
        return _run_view(cfg, args)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
