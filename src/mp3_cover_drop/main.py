from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional, Sequence

from mp3_cover_drop.config import CoverDropConfig
from mp3_cover_drop.cover_editor import CoverArtEditor
from mp3_cover_drop.cover_types import OutcomeStatus, TransactionOutcome
from mp3_cover_drop.errors import UnsupportedImageError
from mp3_cover_drop.transaction import run_cover_drop

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_PERMISSION = 13


def validate_arguments(
    mp3_path: str, image_paths: Sequence[str], config: CoverDropConfig
) -> Optional[str]:
    """Return an error message for bad arguments, or None."""
    if os.path.splitext(mp3_path)[1].lower() != ".mp3":
        return "The given mp3 file has a non mp3 extension."
    try:
        CoverArtEditor(config).validate_image_paths(image_paths)
    except UnsupportedImageError:
        return "There are some images which has a non supported extension."
    if not os.path.isfile(mp3_path) or not all(os.path.isfile(p) for p in image_paths):
        return "Some files given to mp3-cover-drop are not found, please check first."
    return None


def format_outcome(outcome: TransactionOutcome) -> str:
    """User-facing summary of a cover-drop run."""
    path = outcome.path
    if outcome.status is OutcomeStatus.COMMITTED:
        if outcome.removed:
            return (
                f'Success to remove {outcome.removed} cover(s) and add '
                f'{outcome.added} cover(s) to mp3 file "{path}".'
            )
        if outcome.total != outcome.added:
            return (
                f"Success to add {outcome.added} cover(s), now there are "
                f'{outcome.total} covers in the mp3 file "{path}".'
            )
        return f'Success to add {outcome.added} cover(s) to mp3 file "{path}".'

    if outcome.status is OutcomeStatus.ROLLED_BACK:
        return (
            f"Failed to write cover(s) to mp3 file, the original {outcome.total} "
            f"cover(s) were restored. Details:\n{outcome.reason}"
        )

    if outcome.dual_failure:
        return (
            "Failed to write cover(s) to mp3 file, and restoring the original "
            f'cover(s) failed too. Please check "{path}" manually. Details:\n{outcome.reason}'
        )
    if outcome.permission_denied:
        return (
            f"You have no permission to write this mp3 file. Details:\n{outcome.reason}"
        )
    return f"Failed to execute the option. Details:\n{outcome.reason}"


def exit_code_for(outcome: TransactionOutcome) -> int:
    if outcome.ok:
        return EXIT_OK
    if outcome.permission_denied:
        return EXIT_PERMISSION
    return EXIT_FAILED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mp3-cover-drop",
        description="Add cover images to an mp3 file's ID3v2 tag.",
    )
    parser.add_argument("mp3", help="mp3 file to edit")
    parser.add_argument("images", nargs="+", help="cover images (.jpg, .jpeg, .png)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--replace",
        action="store_true",
        help="remove the existing covers before adding the new ones",
    )
    mode.add_argument(
        "--append",
        action="store_true",
        help="keep the existing covers (default)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entrypoint.

    Optional env vars (see CoverDropConfig.from_env):
      - MP3_COVER_DROP_WRITE_VERSION
      - MP3_COVER_DROP_PADDING
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = CoverDropConfig.from_env()
    except ValueError as e:
        print(f"Invalid mp3-cover-drop setting in the environment: {e}", file=sys.stderr)
        return EXIT_USAGE
    log.debug(f"[CONFIG] {config}")
    problem = validate_arguments(args.mp3, args.images, config)
    if problem:
        print(problem, file=sys.stderr)
        return EXIT_USAGE

    outcome = run_cover_drop(args.mp3, args.images, replace=args.replace, config=config)
    message = format_outcome(outcome)
    print(message, file=sys.stdout if outcome.ok else sys.stderr)
    return exit_code_for(outcome)


if __name__ == "__main__":
    sys.exit(main())
