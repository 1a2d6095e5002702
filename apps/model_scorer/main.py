import argparse
import sys
from pathlib import Path

import polars as pl
import yaml

# --- Library Imports ---
from packages.platform_lib.config import settings
from packages.platform_lib.logging import LogManager

from packages.contracts.parameters import ScoringBlueprint

from packages.frames.frame import Frame
from packages.frames.keystore import DKV
from packages.ml_ops.codegen.source_builder import to_python_id
from packages.ml_ops.training.factory import MLComponentFactory

# --- Main Application Logic ---


def main() -> int:
    # --- 1. Argument Parsing (The Dispatcher) ---
    parser = argparse.ArgumentParser(description="Horizon Model Scoring")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # A. `score` command
    parser_score = subparsers.add_parser(
        "score", help="Train a model from a blueprint and score a CSV file."
    )
    parser_score.add_argument("config", type=Path, help="Path to the model's .yml blueprint.")
    parser_score.add_argument("data", type=Path, help="CSV file to score.")
    parser_score.add_argument(
        "--output", type=Path, default=None, help="Where to write predictions (CSV)."
    )

    # B. `export` command
    parser_export = subparsers.add_parser(
        "export", help="Train a model and write its standalone Python scorer."
    )
    parser_export.add_argument("config", type=Path, help="Path to the model's .yml blueprint.")
    parser_export.add_argument(
        "--out-dir", type=Path, default=None, help="Directory for the generated module."
    )

    # C. `validate` command
    parser_validate = subparsers.add_parser(
        "validate", help="Check that the exported scorer reproduces the engine's predictions."
    )
    parser_validate.add_argument("config", type=Path, help="Path to the model's .yml blueprint.")
    parser_validate.add_argument("data", type=Path, help="CSV file to replay.")

    args = parser.parse_args()

    if not args.config.exists():
        print(f"Error: Config file not found at {args.config}")
        return 2

    # --- 2. Command Execution ---
    if args.command == "score":
        return run_score(args.config, args.data, args.output)
    if args.command == "export":
        return run_export(args.config, args.out_dir)
    return run_validate(args.config, args.data)


def load_blueprint(config_path: Path) -> ScoringBlueprint:
    with open(config_path, "r") as f:
        return ScoringBlueprint.model_validate(yaml.safe_load(f))


def read_frame(path: Path, key: str | None = None) -> Frame:
    return Frame.from_polars(pl.read_csv(path), key=key)


def make_logger(command: str, blueprint: ScoringBlueprint):
    log_manager = LogManager(
        f"{command}-{blueprint.model_name}",
        debug=settings.system.debug,
        log_dir=settings.system.log_dir,
    )
    return log_manager.get_logger("main")


def build_model(blueprint: ScoringBlueprint, logger):
    """Installs the blueprint's frames and trains its model."""
    params = blueprint.parameters
    read_frame(Path(blueprint.train_path), key=params.train).install(DKV)
    if blueprint.valid_path and params.valid:
        read_frame(Path(blueprint.valid_path), key=params.valid).install(DKV)

    factory = MLComponentFactory(logger)
    model = factory.create_builder(params).train_model()
    for warning in model.output.warnings:
        logger.warning(warning)
    return model


def run_score(config_path: Path, data_path: Path, output_path: Path | None) -> int:
    # 1. Setup
    blueprint = load_blueprint(config_path)
    logger = make_logger("score", blueprint)

    # 2. Train
    model = build_model(blueprint, logger)

    # 3. Score; metrics only when the file carries the response
    frame = read_frame(data_path).install(DKV)
    response = model.output.response_name
    if response is None or response in frame.names:
        predictions, mm = model.score_with_metrics(frame)
        logger.info(f"Metrics on {data_path.name}: {mm.metrics}")
    else:
        predictions = model.score(frame)

    # 4. Persist
    if output_path is not None:
        predictions.to_polars().write_csv(output_path)
        logger.info(f"Wrote {predictions.num_rows} predictions to {output_path}")
    else:
        print(predictions.to_polars())
    return 0


def run_export(config_path: Path, out_dir: Path | None) -> int:
    blueprint = load_blueprint(config_path)
    logger = make_logger("export", blueprint)

    model = build_model(blueprint, logger)
    source = model.export_code()

    out_dir = out_dir or Path(settings.scoring.export_dir or "exports")
    out_dir.mkdir(parents=True, exist_ok=True)
    target = out_dir / f"{to_python_id(blueprint.model_name)}.py"
    target.write_text(source, encoding="utf-8")
    logger.info(f"Exported scorer for '{blueprint.model_name}' to {target}")
    return 0


def run_validate(config_path: Path, data_path: Path) -> int:
    blueprint = load_blueprint(config_path)
    logger = make_logger("validate", blueprint)

    model = build_model(blueprint, logger)
    frame = read_frame(data_path).install(DKV)

    passed = model.validate_export(frame)
    if passed:
        logger.success(f"Exported scorer of '{blueprint.model_name}' matches the engine.")
        return 0
    logger.error(f"Exported scorer of '{blueprint.model_name}' disagrees with the engine.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
