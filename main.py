#!/usr/bin/env python3
"""
Main pipeline for gel integrity analysis.
Orchestrates the process:
1. Load the gel image and settings (optionally auto-aligned)
2. Segment lanes and quantify bands and smears per lane
3. Write the lane report and print a per-lane summary
"""

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import DEFAULT_PATHS, PIPELINE_PARAMS
from analysis.lane_aggregation import summarize_lanes
from analysis.models import BackgroundMethod, GelSettings, LaneData
from analysis.pipeline import process_image
from image_analysis.geometry import auto_align
from gelquant_utils.image_utils import ImageBuffer, InvalidImageError, calculate_brightness_stats
from gelquant_utils.io_utils import load_gel_image, read_json, write_json, write_jsonl

LOGGER = logging.getLogger("gelquant")


class GelIntegrityPipeline:
    """Main pipeline for one gel image."""

    def __init__(self, args):
        """Initialize pipeline with command-line arguments."""
        self.args = args
        self.settings = self._build_settings(args)
        self.out_path = Path(args.out) if args.out else \
            Path(DEFAULT_PATHS['output_root']) / DEFAULT_PATHS['report_name']
        if args.jsonl and self.out_path.suffix == '.json':
            self.out_path = self.out_path.with_suffix('.jsonl')

    @staticmethod
    def _build_settings(args) -> GelSettings:
        """Settings file first, then explicit command-line flags."""
        values: Dict[str, Any] = {}
        if args.settings:
            values.update(read_json(Path(args.settings)))
        settings = GelSettings.from_dict(values)

        updates: Dict[str, Any] = {}
        if args.lanes is not None:
            updates['num_lanes'] = args.lanes
        if args.no_auto_lanes:
            updates['auto_detect_lanes'] = False
        if args.method is not None:
            updates['background_subtraction_method'] = BackgroundMethod(args.method)
        return dataclasses.replace(settings, **updates) if updates else settings

    def load_image(self) -> ImageBuffer:
        LOGGER.info(f"Analysing {self.args.image}")
        image = load_gel_image(Path(self.args.image))
        LOGGER.debug(f"Image {image.width}x{image.height}, "
                     f"brightness {calculate_brightness_stats(image, self.settings.invert_image)}")
        return image

    def run(self, image: ImageBuffer) -> Dict[str, Any]:
        """
        Run the analysis on a loaded image.

        Returns:
            Dictionary with lanes, summary and report path
        """

        if self.args.auto_align:
            self.settings = auto_align(image, self.settings)
            LOGGER.info(f"Auto-align: invert={self.settings.invert_image}, "
                        f"rotation={self.settings.rotation_angle:.2f} deg, "
                        f"roi=({self.settings.roi_top}, {self.settings.roi_bottom}, "
                        f"{self.settings.roi_left}, {self.settings.roi_right})")

        lanes = process_image(image, self.settings, max_workers=self.args.workers)
        summary = summarize_lanes(lanes)
        self._write_report(lanes, summary)
        self._print_summary(summary)

        return {
            'lanes': lanes,
            'summary': summary,
            'report_path': str(self.out_path),
        }

    def _write_report(self, lanes: List[LaneData], summary: List[Dict[str, Any]]):
        if self.args.jsonl:
            write_jsonl([lane.to_dict() for lane in lanes], self.out_path)
        else:
            write_json({
                'image': str(self.args.image),
                'settings': self.settings.to_dict(),
                'lanes': [lane.to_dict() for lane in lanes],
                'summary': summary,
            }, self.out_path)
        LOGGER.info(f"Report written to {self.out_path}")

    def _print_summary(self, summary: List[Dict[str, Any]]):
        """Print processing summary."""
        print("\n" + "="*50)
        print("Lane Summary")
        print("="*50)
        if not summary:
            print("No lanes found (check ROI settings)")
        for row in summary:
            print(f"  Lane {row['lane']:2d}: integrity {row['integrity_score']:5.1f}%  "
                  f"smear {row['smear_percent']:5.1f}%  bands {row['num_bands']:2d}  "
                  f"main {row['main_band'] or '-'}")
        print("="*50 + "\n")


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Gel electrophoresis lane integrity analysis"
    )

    # Input/Output
    parser.add_argument("image", type=str,
                        help="Gel image (PNG, JPEG, TIFF)")
    parser.add_argument("--settings", type=str, default=None,
                        help="JSON file with analysis settings")
    parser.add_argument("--out", type=str, default=None,
                        help="Report path")
    parser.add_argument("--jsonl", action="store_true",
                        help="Write one lane per line instead of a single JSON report")

    # Analysis options
    parser.add_argument("--auto-align", action="store_true",
                        help="Estimate inversion, rotation and ROI before analysis")
    parser.add_argument("--lanes", type=int, default=None,
                        help="Number of lanes for the uniform grid")
    parser.add_argument("--no-auto-lanes", action="store_true",
                        help="Disable lane detection and use a uniform grid")
    parser.add_argument("--method", choices=[m.value for m in BackgroundMethod], default=None,
                        help="Background subtraction method")
    parser.add_argument("--workers", type=int, default=PIPELINE_PARAMS['max_workers'],
                        help="Threads used for per-lane analysis")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Debug logging")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        pipeline = GelIntegrityPipeline(args)
        image = pipeline.load_image()
    except InvalidImageError as e:
        LOGGER.error(str(e))
        return 1
    except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
        LOGGER.error(f"Invalid settings: {e}")
        return 1

    results = pipeline.run(image)

    print(f"Report file:  {results['report_path']}")
    print(f"Total lanes:  {len(results['lanes'])}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
