#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Main entry point for the NetworkOS agent core.

Runs an orchestration against a company from the command line and prints
the run result as JSON.
"""

import sys
import json
import argparse
import logging
from typing import List, Optional

import networkos_agents
from networkos_agents.config import AppConfig, WORKFLOW_DEPTHS
from networkos_agents.capabilities.handlers import build_default_registry
from networkos_agents.fusion.fusion import EvidenceFusionEngine
from networkos_agents.orchestration.orchestrator import AgentOrchestrator, load_policy_set
from networkos_agents.orchestration.errors import ReasoningUnavailableError
from networkos_agents.orchestration.state import OrchestrationRequest, RunResult, WorkflowType
from networkos_agents.reasoning.anthropic_engine import AnthropicReasoningEngine
from networkos_agents.reasoning.pitch_generator import AnthropicPitchGenerator
from networkos_agents.utils.logger import get_logger, set_log_level

logger = get_logger(__name__)


def setup_argparse(config: AppConfig) -> argparse.ArgumentParser:
    """
    Set up command-line argument parsing.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        description="NetworkOS Agent Core",
        epilog="Research, qualify and prepare outreach for a company with an agent loop.",
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=["run", "capabilities", "validate-config"],
        default="run",
        help="Command to execute (default: run)",
    )

    # Request
    parser.add_argument("--domain", type=str, help="Company domain to work on")
    parser.add_argument("--company-name", type=str, help="Company name, if known")
    parser.add_argument(
        "--workflow",
        type=str,
        choices=[w.value for w in WorkflowType],
        default=WorkflowType.FULL_QUALIFICATION.value,
        help="Workflow template to run (default: full_qualification)",
    )
    parser.add_argument(
        "--target-roles",
        type=str,
        help="Comma-separated roles to look for when finding contacts",
    )
    parser.add_argument(
        "--products",
        type=str,
        help="Comma-separated products to focus pitches on",
    )
    parser.add_argument(
        "--instructions",
        type=str,
        help="Instructions for the custom workflow",
    )

    # Run options
    parser.add_argument(
        "--depth",
        type=str,
        choices=list(WORKFLOW_DEPTHS),
        default=config.default_depth,
        help=f"Research depth (default: {config.default_depth})",
    )
    parser.add_argument(
        "--budget",
        type=float,
        help=f"Budget ceiling in dollars (default: {config.budget_ceiling:.2f})",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        help=f"Maximum reasoning iterations (default: {config.max_iterations})",
    )
    parser.add_argument(
        "--pitches",
        action="store_true",
        help="Enable pitch generation",
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not save opportunities or pitches to the pipeline",
    )

    # Output
    parser.add_argument(
        "--output",
        type=str,
        help="Write the run result to this JSON file instead of stdout",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version information",
    )

    return parser


def _split(value: Optional[str]) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def build_request(args: argparse.Namespace) -> OrchestrationRequest:
    """Build an orchestration request from parsed arguments."""
    options = {
        "depth": args.depth,
        "save_results": not args.no_save,
        "generate_pitches": args.pitches,
    }
    if args.budget is not None:
        options["max_budget"] = args.budget

    return OrchestrationRequest(
        type=args.workflow,
        input={
            "domain": args.domain,
            "company_name": args.company_name,
            "target_roles": _split(args.target_roles),
            "focus_products": _split(args.products),
            "custom_instructions": args.instructions,
        },
        options=options,
    )


def build_orchestrator(config: AppConfig, with_pitches: bool = False) -> AgentOrchestrator:
    """Wire the Claude engine and the built-in capabilities together."""
    fusion = EvidenceFusionEngine(load_policy_set(config))
    registry = build_default_registry(
        pitch_generator=AnthropicPitchGenerator(config) if with_pitches else None,
        config=config,
        fusion=fusion,
    )
    return AgentOrchestrator(AnthropicReasoningEngine(config), registry, config=config, fusion=fusion)


def write_result(result: RunResult, output: Optional[str] = None) -> None:
    content = json.dumps(result.to_dict(), indent=2, default=str)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(content)
        logger.info(f"Run result written to {output}")
    else:
        print(content)


def run_orchestration(args: argparse.Namespace, config: AppConfig) -> bool:
    """
    Run one orchestration from command-line arguments.

    Returns:
        bool: True if the run succeeded
    """
    if not args.domain and not args.company_name:
        logger.error("Either --domain or --company-name is required")
        return False

    if not config.anthropic_api_key:
        logger.error("ANTHROPIC_API_KEY is not set")
        return False

    request = build_request(args)
    orchestrator = build_orchestrator(config, with_pitches=args.pitches)

    try:
        result = orchestrator.run(request, max_iterations=args.max_iterations)
    except ReasoningUnavailableError as e:
        logger.error(f"Reasoning engine unavailable: {e}")
        if e.result is not None:
            write_result(e.result, args.output)
        return False

    logger.info(
        f"Run {result.run_id} finished: {result.to_dict()['termination_reason']}, "
        f"{result.iterations} iterations, cost ${result.total_cost:.4f}"
    )
    write_result(result, args.output)
    return result.success


def list_capabilities(config: AppConfig) -> bool:
    """Print the capability definitions offered to the reasoning engine."""
    registry = build_default_registry(
        pitch_generator=AnthropicPitchGenerator(config) if config.anthropic_api_key else None,
        config=config,
    )
    for definition in registry.tool_definitions():
        terminal = " (terminal)" if registry.is_terminal(definition["name"]) else ""
        print(f"{definition['name']}{terminal}: {definition['description']}")
    return True


def main() -> int:
    """
    Main entry point for the application.

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    config = AppConfig()
    parser = setup_argparse(config)
    args = parser.parse_args()

    if args.version:
        print(f"NetworkOS Agent Core v{networkos_agents.__version__}")
        return 0

    if args.verbose:
        set_log_level(logging.DEBUG)
    elif args.log_level:
        set_log_level(args.log_level)

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return 1

    try:
        if args.command == "run":
            success = run_orchestration(args, config)
        elif args.command == "capabilities":
            success = list_capabilities(config)
        elif args.command == "validate-config":
            logger.info("Configuration is valid")
            success = True
        else:
            logger.error(f"Unknown command: {args.command}")
            return 1

        return 0 if success else 1

    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        return 130  # Standard exit code for SIGINT
    except Exception as e:
        logger.exception(f"Unhandled error: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
