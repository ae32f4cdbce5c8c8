"""
CLI Interface for Face Overlay Tool

Provides command-line interface for overlaying a face photo onto a jersey
image, with argument parsing, validation, and user feedback.
"""

import argparse
import sys
import os
import logging
from typing import Optional, List

from .. import __version__
from ..errors import PipelineError
from ..face_detection import LandmarkProvider, HaarLandmarkProvider, MediaPipeLandmarkProvider
from ..face_overlay import FaceOverlayPipeline, CompositeResult, PIPELINE_PRESETS
from ..utils.image_io import load_image, save_image, downscale_if_needed, WRITABLE_SUFFIXES
from ..utils.logging_config import setup_cli_logging
from .config import CLIConfig, DETECTORS, load_config, create_sample_config, get_default_config_path

EXIT_OK = 0
EXIT_PIPELINE_ERROR = 1
EXIT_USAGE_ERROR = 2


class CLIApp:
    """
    Command line front end for the face overlay pipeline.

    Settings come from defaults, then an optional config file, then flags.
    Exit codes: 0 success (including fallback output), 1 pipeline failure,
    2 bad arguments or settings.
    """

    def __init__(self):
        """Start with default settings; a config file may replace them."""
        self.config = CLIConfig()
        self.logger = logging.getLogger(__name__)

    def setup_logging(self, verbose: bool = False, quiet: bool = False,
                      log_file: Optional[str] = None, level: str = "INFO") -> None:
        """
        Configure root logging from the CLI flags.

        Args:
            verbose: Enable verbose logging
            quiet: Enable quiet mode (errors only)
            log_file: Optional log file path
            level: Level name used when neither flag is set
        """
        setup_cli_logging(verbose=verbose, quiet=quiet, log_file=log_file, default_level=level)

    def create_argument_parser(self) -> argparse.ArgumentParser:
        """
        Build the faceoverlay argument parser.

        Returns:
            ArgumentParser with input, pipeline, output and info groups
        """
        parser = argparse.ArgumentParser(
            prog='faceoverlay',
            description='Face Overlay Tool - Put your face on a jersey photo',
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog='''
Examples:
  %(prog)s -d jersey.png -s face.jpg -o result.png
  %(prog)s -d jersey.png -s face.jpg -o result.png --preset clean
  %(prog)s -d jersey.png -s face.jpg -o result.png --fallback --verbose
            '''
        )

        # Input and output images, not needed with --create-config
        required = parser.add_argument_group('required arguments')
        required.add_argument(
            '-d', '--destination',
            type=str,
            metavar='IMAGE',
            help='Destination (jersey) image file path'
        )
        required.add_argument(
            '-s', '--source',
            type=str,
            metavar='IMAGE',
            help='Source face image file path'
        )
        required.add_argument(
            '-o', '--output',
            type=str,
            metavar='IMAGE',
            help='Output image file path (.png recommended)'
        )

        # Pipeline options
        pipeline = parser.add_argument_group('pipeline options')
        pipeline.add_argument(
            '--preset',
            choices=list(PIPELINE_PRESETS.keys()),
            help='Masking preset (default: advanced)'
        )
        pipeline.add_argument(
            '--config',
            type=str,
            metavar='FILE',
            help='Configuration file path (.yaml or .json)'
        )
        pipeline.add_argument(
            '--workers',
            type=int,
            metavar='N',
            help='Worker threads for multi-face images (default: 1)'
        )
        pipeline.add_argument(
            '--detector',
            choices=list(DETECTORS),
            help='Face detector: haar (offline, estimated landmarks) or mediapipe (default: haar)'
        )
        pipeline.add_argument(
            '--min-face-size',
            type=int,
            metavar='PX',
            help='Smallest face the detector reports (default: 30)'
        )
        pipeline.add_argument(
            '--fallback',
            action='store_true',
            default=None,
            help='Write the unmodified destination image if the overlay fails'
        )
        pipeline.add_argument(
            '--downscale',
            type=int,
            metavar='PX',
            help='Shrink inputs so their larger side fits PX before processing'
        )

        # Output options
        output = parser.add_argument_group('output options')
        output.add_argument(
            '--verbose', '-v',
            action='store_true',
            help='Enable verbose output'
        )
        output.add_argument(
            '--quiet', '-q',
            action='store_true',
            help='Suppress all output except errors'
        )
        output.add_argument(
            '--log-file',
            type=str,
            metavar='FILE',
            help='Also write logs to FILE'
        )

        # Version and sample config
        info = parser.add_argument_group('information')
        info.add_argument(
            '--version',
            action='version',
            version=f'%(prog)s {__version__}'
        )
        info.add_argument(
            '--create-config',
            type=str,
            metavar='FILE',
            help='Write a sample configuration file and exit'
        )

        return parser

    def validate_arguments(self, args: argparse.Namespace) -> None:
        """
        Check flag combinations, input files and the output format.

        Args:
            args: Parsed command line arguments

        Raises:
            ValueError: If validation fails
        """
        if args.verbose and args.quiet:
            raise ValueError("Cannot use --verbose and --quiet together")

        if not args.destination:
            raise ValueError("Destination image file is required")
        if not args.source:
            raise ValueError("Source face image file is required")
        if not args.output:
            raise ValueError("Output image file is required")

        if not os.path.exists(args.destination):
            raise ValueError(f"Destination image file not found: {args.destination}")
        if not os.path.exists(args.source):
            raise ValueError(f"Source image file not found: {args.source}")

        suffix = os.path.splitext(args.output)[1].lower()
        if suffix not in WRITABLE_SUFFIXES:
            raise ValueError(f"Output must be one of: {', '.join(sorted(WRITABLE_SUFFIXES))}")

    def load_configuration(self, args: argparse.Namespace) -> None:
        """
        Load configuration file and apply command line overrides.

        Args:
            args: Parsed command line arguments

        Raises:
            ValueError: If the resulting configuration is invalid
        """
        config_path = args.config
        if not config_path:
            default_path = get_default_config_path()
            if default_path.exists():
                config_path = str(default_path)

        if config_path:
            try:
                self.config = load_config(config_path)
            except FileNotFoundError as e:
                raise ValueError(str(e)) from e

        overrides = {
            'preset': args.preset,
            'detector': args.detector,
            'max_workers': args.workers,
            'min_face_size': args.min_face_size,
            'fallback': args.fallback,
            'downscale': args.downscale,
            'log_file': args.log_file
        }
        for key, value in overrides.items():
            if value is not None:
                setattr(self.config, key, value)

        self.config.validate()

    def create_provider(self) -> LandmarkProvider:
        """Landmark provider selected by the detector setting."""
        if self.config.detector == "mediapipe":
            return MediaPipeLandmarkProvider(max_faces=4)
        return HaarLandmarkProvider(min_face_size=self.config.min_face_size)

    def run_pipeline(self, args: argparse.Namespace) -> CompositeResult:
        """
        Load inputs, run the overlay and write the output image.

        Args:
            args: Parsed command line arguments

        Returns:
            CompositeResult of the run

        Raises:
            PipelineError: If the overlay fails and fallback is disabled
            RuntimeError: If the face detector cannot be loaded
        """
        destination = load_image(args.destination)
        source = load_image(args.source)

        if self.config.downscale:
            destination = downscale_if_needed(destination, self.config.downscale)
            source = downscale_if_needed(source, self.config.downscale)

        pipeline_config = self.config.to_pipeline_config()

        with self.create_provider() as provider, FaceOverlayPipeline(provider, pipeline_config) as pipeline:
            if self.config.fallback:
                result = pipeline.swap_or_fallback(destination, source)
            else:
                result = pipeline.swap(destination, source)

        save_image(result.image, args.output)
        return result

    def print_summary(self, result: CompositeResult, output_path: str) -> None:
        """Print provenance of a finished run."""
        print("Face Overlay Summary")
        print("=" * 30)
        print(f"Output:              {output_path}")
        print(f"Status:              {'overlay applied' if result.success else 'original image (fallback)'}")
        if result.error:
            print(f"Error:               {result.error}")
        print(f"Source faces:        {result.source_faces_detected}")
        print(f"Destination faces:   {result.destination_faces_detected}")
        print(f"Composited regions:  {', '.join(str(i) for i in result.composited_regions) or 'none'}")
        print(f"Processing time:     {result.processing_time:.3f}s")

    def run(self, argv: Optional[List[str]] = None) -> int:
        """
        Parse arguments, run the overlay and report the outcome.

        Args:
            argv: Command line arguments (default: sys.argv)

        Returns:
            Exit code (0 success, 1 pipeline failure, 2 usage/config error)
        """
        parser = self.create_argument_parser()
        args = parser.parse_args(argv)

        self.setup_logging(args.verbose and not args.quiet, args.quiet)

        if args.create_config:
            create_sample_config(args.create_config)
            if not args.quiet:
                print(f"Sample configuration written to: {args.create_config}")
            return EXIT_OK

        try:
            self.validate_arguments(args)
            self.load_configuration(args)
        except ValueError as e:
            self.logger.error(f"Invalid arguments: {e}")
            if not args.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return EXIT_USAGE_ERROR

        # Logging settings from a config file take effect once it is loaded
        self.setup_logging(args.verbose, args.quiet, self.config.log_file, self.config.log_level)

        try:
            result = self.run_pipeline(args)
        except PipelineError as e:
            self.logger.error(f"Face overlay failed: {e}")
            if not args.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return EXIT_PIPELINE_ERROR
        except RuntimeError as e:
            self.logger.error(f"Face detector unavailable: {e}")
            if not args.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return EXIT_PIPELINE_ERROR
        except KeyboardInterrupt:
            if not args.quiet:
                print("\nOperation cancelled by user", file=sys.stderr)
            return 130

        if not args.quiet:
            self.print_summary(result, args.output)

        return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Console script entry point."""
    app = CLIApp()
    return app.run(argv)


if __name__ == '__main__':
    sys.exit(main())
