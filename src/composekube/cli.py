"""Command-line interface for composekube."""

import argparse
import logging
import sys
import traceback

from composekube import __version__
from composekube.cluster import KubernetesClient, load_cluster_config
from composekube.exceptions import (
    ClusterError,
    ComposeKubeError,
    ConfigurationError,
    EscalatedWarningError,
    FormatError,
    InputError,
    SchemaError,
    ValidationError,
)
from composekube.loader import load_application
from composekube.models import ConversionContext, InputFormat, Platform
from composekube.options import DEFAULT_COMPOSE_FILE, ConvertOptions, validate_options
from composekube.output import OutputWriter
from composekube.prompt import ask_for_confirmation
from composekube.transformer import get_transformer

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIGURATION_ERROR = 1
EXIT_LOAD_ERROR = 2
EXIT_VALIDATION_ERROR = 3
EXIT_CLUSTER_ERROR = 4
EXIT_INPUT_ERROR = 5

EXIT_CODES = {
    ConfigurationError: EXIT_CONFIGURATION_ERROR,
    FormatError: EXIT_LOAD_ERROR,
    SchemaError: EXIT_LOAD_ERROR,
    ValidationError: EXIT_VALIDATION_ERROR,
    EscalatedWarningError: EXIT_VALIDATION_ERROR,
    ClusterError: EXIT_CLUSTER_ERROR,
    InputError: EXIT_INPUT_ERROR,
}

UP_NOTICE = (
    "We are going to create Kubernetes deployments and services for your "
    "application.\nIf you need different kinds of objects, use "
    "'composekube convert' and 'kubectl create -f' instead.\n"
)

logger = logging.getLogger(__name__)


def _input_file(args: argparse.Namespace) -> str:
    """Compose input as given on the command line, for option validation."""
    return ",".join(args.file) if args.file else DEFAULT_COMPOSE_FILE


def _context(args: argparse.Namespace) -> ConversionContext:
    source_format = InputFormat.BUNDLE if args.bundle else InputFormat.COMPOSE
    return ConversionContext(
        source_format=source_format.value, error_on_warning=args.error_on_warning
    )


def convert_command(args: argparse.Namespace) -> int:
    """Execute convert subcommand.

    Loads the input, transforms it for the platform implied by the
    controller flags and writes the objects.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code
    """
    out_file = args.out
    to_stdout = args.stdout
    single_output = bool(out_file) or to_stdout

    if out_file == "-":
        to_stdout = True
        out_file = None

    options = ConvertOptions(
        create_deployment=args.deployment,
        create_daemonset=args.daemonset,
        create_replication_controller=args.replication_controller,
        create_deployment_config=args.deployment_config,
        to_stdout=to_stdout,
        out_file=out_file,
        create_chart=args.chart,
        generate_yaml=args.yaml,
        replicas=args.replicas,
        input_files=args.file or [DEFAULT_COMPOSE_FILE],
        bundle_file=args.bundle,
    )
    validate_options(options, single_output, args.bundle, _input_file(args))

    context = _context(args)
    model = load_application(options, context)
    logger.info(f"Loaded application '{model.name}' ({len(model.services)} services)")

    transformer = get_transformer(options.platform, context)
    objects = transformer.transform(model, options)
    logger.info(f"Generated {len(objects)} {options.platform} objects")

    OutputWriter(options).write(objects, model.name)
    return EXIT_SUCCESS


def up_command(args: argparse.Namespace) -> int:
    """Execute up subcommand.

    Creates one Deployment with a single replica per service, plus the
    services and claims it needs, in the current cluster.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code
    """
    print(UP_NOTICE)

    options = ConvertOptions(
        create_deployment=True,
        replicas=1,
        input_files=args.file or [DEFAULT_COMPOSE_FILE],
        bundle_file=args.bundle,
    )
    validate_options(options, False, args.bundle, _input_file(args))

    context = _context(args)
    model = load_application(options, context)
    objects = get_transformer(Platform.KUBERNETES, context).transform(model, options)

    config = load_cluster_config(args.kubeconfig, args.context)
    namespace = args.namespace or config.namespace
    client = KubernetesClient(config)
    try:
        client.create_objects(objects, namespace)
    finally:
        client.close()

    print(f"Success! Created {len(objects)} objects in namespace '{namespace}'")
    return EXIT_SUCCESS


def down_command(args: argparse.Namespace) -> int:
    """Execute down subcommand.

    Deletes every object labelled with one of the application's services.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code
    """
    options = ConvertOptions(
        input_files=args.file or [DEFAULT_COMPOSE_FILE],
        bundle_file=args.bundle,
    )
    validate_options(options, False, args.bundle, _input_file(args))

    model = load_application(options, _context(args))

    config = load_cluster_config(args.kubeconfig, args.context)
    namespace = args.namespace or config.namespace
    question = (
        f"Delete all objects of application '{model.name}' from namespace "
        f"'{namespace}'? [yes/no]: "
    )
    client = KubernetesClient(config)
    try:
        if not args.yes and not ask_for_confirmation(question):
            print("Aborted")
            return EXIT_SUCCESS

        deleted = 0
        for service_name, _ in model.sorted_services():
            deleted += client.delete_objects(service_name, namespace)
    finally:
        client.close()

    print(f"Success! Deleted {deleted} objects from namespace '{namespace}'")
    return EXIT_SUCCESS


COMMANDS = {
    "convert": convert_command,
    "up": up_command,
    "down": down_command,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    setup_logging(args)

    try:
        return COMMANDS[args.command](args)

    except ComposeKubeError as e:
        logger.debug(f"{type(e).__name__}: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return EXIT_CODES.get(type(e), EXIT_CONFIGURATION_ERROR)

    except OSError as e:
        logger.error(f"Failed to write output: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR

    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        return EXIT_INPUT_ERROR


def create_argument_parser() -> argparse.ArgumentParser:
    """Create argument parser with the convert, up and down subcommands.

    Returns:
        Configured ArgumentParser instance
    """
    # Flags shared by every subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-f",
        "--file",
        action="append",
        metavar="FILE",
        help=(
            "Compose file; repeat to merge override files "
            f"(default: {DEFAULT_COMPOSE_FILE})"
        ),
    )
    common.add_argument(
        "-b", "--bundle", metavar="FILE", help="Application bundle (.dab) file"
    )
    common.add_argument(
        "--error-on-warning",
        action="store_true",
        help="Treat any conversion warning as an error",
    )
    verbosity = common.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output (debug details)"
    )
    verbosity.add_argument(
        "-q",
        "--suppress-warnings",
        action="store_true",
        help="Suppress warnings (errors only)",
    )

    parser = argparse.ArgumentParser(
        prog="composekube",
        description="Convert compose files and application bundles to "
        "Kubernetes and OpenShift objects",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    convert = subparsers.add_parser(
        "convert", parents=[common], help="Convert the application to objects"
    )
    convert.add_argument(
        "-o",
        "--out",
        metavar="FILE",
        help="Write all objects to a single file ('-' for stdout)",
    )
    convert.add_argument(
        "--stdout", action="store_true", help="Write all objects to stdout"
    )
    convert.add_argument(
        "-y", "--yaml", action="store_true", help="Generate YAML instead of JSON"
    )
    convert.add_argument(
        "-c", "--chart", action="store_true", help="Package the objects as a chart"
    )
    convert.add_argument(
        "--deployment", action="store_true", help="Generate Deployments (default)"
    )
    convert.add_argument(
        "--daemonset", action="store_true", help="Generate DaemonSets"
    )
    convert.add_argument(
        "--replication-controller",
        action="store_true",
        help="Generate ReplicationControllers",
    )
    convert.add_argument(
        "--deployment-config",
        action="store_true",
        help="Generate OpenShift DeploymentConfigs and ImageStreams",
    )
    convert.add_argument(
        "--replicas",
        type=int,
        metavar="N",
        help="Replica count for every controller (default: service hint or 1)",
    )

    for name, help_text in (
        ("up", "Create the application's objects in the current cluster"),
        ("down", "Delete the application's objects from the current cluster"),
    ):
        command = subparsers.add_parser(name, parents=[common], help=help_text)
        command.add_argument(
            "--kubeconfig",
            metavar="FILE",
            help="Kubeconfig file (default: $KUBECONFIG or ~/.kube/config)",
        )
        command.add_argument(
            "--namespace",
            metavar="NAME",
            help="Target namespace (default: namespace of the current context)",
        )
        command.add_argument(
            "--context",
            metavar="NAME",
            help="Kubeconfig context to use (default: current-context)",
        )

    subparsers.choices["down"].add_argument(
        "--yes", action="store_true", help="Do not ask for confirmation"
    )

    return parser


def setup_logging(args: argparse.Namespace) -> None:
    """Configure logging based on command-line arguments.

    Args:
        args: Parsed command-line arguments
    """
    if args.verbose:
        level = logging.DEBUG
    elif args.suppress_warnings:
        level = logging.ERROR
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


if __name__ == "__main__":
    sys.exit(main())
