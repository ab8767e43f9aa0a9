#!/usr/bin/env python3
"""
Submission Image Compressor
Main Entry Point - prepares report attachments for upload
"""

import argparse
import dataclasses
import mimetypes
import os
import sys
from pathlib import Path
from typing import List, Optional

# Add src directory to path
sys.path.append(os.path.join(os.path.dirname(__file__), 'src'))

from attachment_utils import format_file_size, prepare_attachments
from compression_errors import AttachmentRejected
from config import SHORTFALL_ACCEPT, SHORTFALL_REJECT, get_config
from image_models import SourceImage
from logger import configure_logging
from output_saving_utils import log_processed_file, save_compressed_image

# Older interpreters only know .webp when the system ships a mime.types file
mimetypes.add_type("image/webp", ".webp")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Shrink images to fit the upload size budget before attaching them to a report.",
    )
    parser.add_argument("files", nargs="+", type=Path, help="Images to attach (JPG, PNG, GIF or WEBP).")
    parser.add_argument("--budget-kb", type=int, help="Maximum size per image in KB. Default: 500.")
    parser.add_argument("-o", "--output-dir", type=Path, help="Where to write the prepared images.")
    parser.add_argument("--log-file", type=Path, help="Append a record of every processed image here.")
    parser.add_argument(
        "--shortfall-policy",
        choices=[SHORTFALL_ACCEPT, SHORTFALL_REJECT],
        help="Keep or drop images still over budget after compression.",
    )
    parser.add_argument("--workers", type=int, help="Number of images compressed in parallel.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every compression attempt.")
    return parser


def read_source(path: Path) -> SourceImage:
    """Read a file and guess its mime type from the extension."""
    mime_type, _ = mimetypes.guess_type(path.name)
    return SourceImage(data=path.read_bytes(), mime_type=mime_type or "application/octet-stream", file_name=path.name)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else None)

    overrides = {}
    if args.budget_kb is not None:
        overrides["budget_bytes"] = args.budget_kb * 1024
    if args.output_dir is not None:
        overrides["output_dir"] = args.output_dir
    if args.log_file is not None:
        overrides["log_file"] = args.log_file
    if args.shortfall_policy is not None:
        overrides["shortfall_policy"] = args.shortfall_policy
    if args.workers is not None:
        overrides["max_workers"] = args.workers
    config = dataclasses.replace(get_config(), **overrides)

    sources = []
    for path in args.files:
        try:
            sources.append(read_source(path))
        except OSError as e:
            print(f"❌ Could not read {path}: {e}")
            return 1

    names = [source.file_name for source in sources]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        print(f"❌ Several files share the name {', '.join(duplicates)}; rename them and try again")
        return 1

    try:
        prepared = prepare_attachments(sources, config)
    except AttachmentRejected as e:
        print(f"❌ {e}")
        return 1

    original_sizes = {source.file_name: source.byte_size for source in sources}
    for image in prepared.attachments:
        saved_path = save_compressed_image(image, str(config.output_dir))
        log_processed_file(str(config.log_file), image.file_name, original_sizes[image.file_name], image)
        marker = "⚠️" if image.shortfall else "✅"
        print(
            f"{marker} {image.file_name}: {format_file_size(original_sizes[image.file_name])} -> "
            f"{format_file_size(image.byte_size)} ({saved_path})"
        )

    for failure in prepared.failures:
        print(f"❌ {failure.file_name}: {failure.message}")

    print(f"📁 {len(prepared.attachments)} ready for upload, {len(prepared.failures)} skipped.")
    return 0 if prepared.ok else 1


if __name__ == "__main__":
    sys.exit(main())
