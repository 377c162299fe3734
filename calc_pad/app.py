import argparse
import logging
import os
import re
import sys
from typing import Any, Dict, List, Optional

import flask
from flask import jsonify, request

from calc_pad.document import Document, LineResult, ResultKind, deserialize_lines
from calc_pad.formatting import format_value
from calc_pad.functions import FUNCTIONS
from calc_pad.units import get_catalog

# --- Configuration ---
HOST = os.environ.get("CALC_PAD_HOST", "0.0.0.0")
PORT = int(os.environ.get("CALC_PAD_PORT", "5200"))
DEBUG_MODE = os.environ.get("CALC_PAD_DEBUG", "false").lower() in ("1", "true", "yes")
HISTORY_FILE = os.environ.get(
    "CALC_PAD_HISTORY", os.path.join(os.path.expanduser("~"), ".calc_pad_history")
)

# --- Logging Setup ---
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# --- Flask App Setup ---

app = flask.Flask(__name__)
app.config["DEBUG"] = DEBUG_MODE


def format_result(result: LineResult) -> str:
    """One-line rendering of a line result for terminals."""
    if result.kind is ResultKind.VALUE:
        return result.display
    if result.kind is ResultKind.ERROR:
        return f"Error: {result.message}"
    return ""


def result_to_json(index: int, text: str, result: LineResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"line": index + 1, "text": text, "result": result.display}
    if result.kind is ResultKind.VALUE:
        payload["magnitude"] = result.magnitude
        payload["unit"] = result.unit_string
    if result.kind is ResultKind.ERROR:
        payload["error"] = result.message
        payload["kind"] = result.error_kind.value
    if result.variable:
        payload["variable"] = result.variable
    return payload


# --- API Endpoints ---


@app.route("/calculate", methods=["POST"])
def calculate():
    """Evaluates a single line on its own, as the first line of an empty document."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "query" not in data:
        return jsonify({"error": "Missing 'query' in JSON payload"}), 400

    query = data["query"]
    if not isinstance(query, str) or not query.strip():
        return jsonify({"error": "Query cannot be empty"}), 400
    query = query.strip()

    try:
        result = Document([query]).results[0]
    except Exception as e:
        logger.error(f"Internal error evaluating '{query}': {e}", exc_info=True)
        return jsonify({"error": "An internal server error occurred during calculation."}), 500

    if result.kind is ResultKind.ERROR:
        logger.warning(f"Calculation failed for expression '{query}': {result.message}")
        return jsonify({"error": result.message, "kind": result.error_kind.value}), 400
    if result.kind is ResultKind.EMPTY:
        logger.warning(f"No expression found in: '{query}'")
        return jsonify({"error": f"Could not understand or parse expression: '{query}'"}), 400

    logger.info(f"Calculation succeeded for expression '{query}'. Result: {result.display}")
    return jsonify(
        {"result": result.display, "magnitude": result.magnitude, "unit": result.unit_string}
    ), 200


@app.route("/evaluate", methods=["POST"])
def evaluate_document():
    """Evaluates a whole notepad, given as a list of lines or as one text blob."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Expected a JSON object"}), 400

    if "lines" in data:
        lines = data["lines"]
        if not isinstance(lines, list) or not all(isinstance(line, str) for line in lines):
            return jsonify({"error": "'lines' must be a list of strings"}), 400
    elif "text" in data:
        if not isinstance(data["text"], str):
            return jsonify({"error": "'text' must be a string"}), 400
        lines = deserialize_lines(data["text"])
    else:
        return jsonify({"error": "Missing 'lines' or 'text' in JSON payload"}), 400

    try:
        document = Document(lines)
    except Exception as e:
        logger.error(f"Internal error evaluating document: {e}", exc_info=True)
        return jsonify({"error": "An internal server error occurred during calculation."}), 500

    payload = [
        result_to_json(index, line.raw_text, line.result)
        for index, line in enumerate(document.lines)
    ]
    errors = sum(1 for line in document.lines if line.result.kind is ResultKind.ERROR)
    logger.info(f"Evaluated document with {len(payload)} lines ({errors} with errors)")
    variables = {name: format_value(value) for name, value in document.variables.items()}
    return jsonify({"lines": payload, "variables": variables}), 200


@app.route("/units", methods=["GET"])
def list_units():
    """Lists unit display names grouped by dimension."""
    return jsonify({"units": get_catalog().units_by_dimension()}), 200


# --- CLI Interface ---
CLI_COMMANDS = ["help", "vars", "lines", "clear", "edit", "insert", "delete", "exit", "quit"]
EDIT_COMMAND_PATTERN = re.compile(r"^\s*(edit|insert)\s+(\d+)(?:\s+(.*))?$", re.IGNORECASE)
DELETE_COMMAND_PATTERN = re.compile(r"^\s*delete\s+(\d+)\s*$", re.IGNORECASE)
PRINT_VAR_PATTERN = re.compile(r"^\s*(?:\?|print\s+)([a-zA-Z_][a-zA-Z0-9_]*)\s*$", re.IGNORECASE)


def print_document(document: Document):
    width = max((len(text) for text in document.texts), default=0)
    for number, line in enumerate(document.lines, start=1):
        rendered = format_result(line.result)
        suffix = f"  = {rendered}" if line.result.kind is ResultKind.VALUE else f"  {rendered}"
        print(f"{number:>3}  {line.raw_text.ljust(width)}{suffix if rendered else ''}")


def print_help():
    print("\nUsage examples:")
    print("  1 TiB to GiB              - Convert units")
    print("  servers = 40              - Assign a variable")
    print("  servers * 2               - Use a variable")
    print("  line1 + 4 GiB             - Use the result of line 1")
    print("  $5/day * 3 months         - Currency rates")
    print("  100 QPS * 1 hour          - Request rates")
    print("  1000 GiB / 10 minutes     - Data rates")
    print("  10% of 50                 - Percentages")
    print("  sqrt(16), 2^10            - Functions and powers")
    print("  sum_above()               - Total of the lines above")
    print("\nCommands:")
    print("  ?x or print x             - Print the value of variable x")
    print("  vars                      - List variables")
    print("  lines                     - Show the whole document")
    print("  edit N <text>             - Replace line N")
    print("  insert N <text>           - Insert a line before line N")
    print("  delete N                  - Delete line N")
    print("  clear                     - Start a new document")
    print("  exit                      - Leave the calculator\n")


def handle_edit_command(document: Document, query: str) -> bool:
    """Applies edit/insert/delete commands; returns False when query is not one."""
    edit_match = EDIT_COMMAND_PATTERN.match(query)
    delete_match = DELETE_COMMAND_PATTERN.match(query)
    if not edit_match and not delete_match:
        return False

    try:
        if delete_match:
            document.delete_line(int(delete_match.group(1)) - 1)
        else:
            command, number, text = edit_match.groups()
            index = int(number) - 1
            if command.lower() == "edit":
                document.set_line(index, text or "")
            else:
                document.insert_line(index, text or "")
    except IndexError as e:
        print(f"Error: {e}")
        return True

    print_document(document)
    return True


def run_cli_mode(document: Optional[Document] = None):
    """Run the calculator as an interactive notepad, one line per prompt."""
    if document is None:
        document = Document([])

    try:
        import readline

        try:
            readline.read_history_file(HISTORY_FILE)
            readline.set_history_length(1000)
        except FileNotFoundError:
            pass

        import atexit

        atexit.register(readline.write_history_file, HISTORY_FILE)

        def completer(text, state):
            candidates = CLI_COMMANDS + list(FUNCTIONS) + list(document.variables)
            candidates += get_catalog().aliases()
            matches = [c for c in candidates if c.startswith(text)]
            if state < len(matches):
                return matches[state]
            return None

        readline.parse_and_bind("tab: complete")
        readline.set_completer(completer)
        has_readline = True
    except ImportError:
        has_readline = False

    print("calc-pad - type 'help' for examples, Ctrl+C to exit")
    if has_readline:
        print("Use TAB to complete units, variables and commands")
    else:
        print("Note: Install 'readline' (Unix) or 'pyreadline3' (Windows) for command history and tab completion")

    try:
        while True:
            query = input(f"{len(document) + 1:>3}> ")
            command = query.strip().lower()

            if command in ("exit", "quit", "bye"):
                break
            if command == "help":
                print_help()
                continue
            if command == "vars":
                variables = document.variables
                if not variables:
                    print("No variables defined.")
                for name, value in variables.items():
                    print(f"  {name} = {format_value(value)}")
                continue
            if command == "lines":
                print_document(document)
                continue
            if command == "clear":
                document = Document([])
                print("Started a new document.")
                continue

            print_var_match = PRINT_VAR_PATTERN.match(query)
            if print_var_match:
                name = print_var_match.group(1)
                value = document.variables.get(name)
                if value is None:
                    print(f"Variable '{name}' is not defined")
                else:
                    print(f"{name} = {format_value(value)}")
                continue

            if handle_edit_command(document, query):
                continue

            result = document.append_line(query)
            rendered = format_result(result)
            if result.kind is ResultKind.VALUE:
                print(f"  = {rendered}")
            elif rendered:
                print(f"  {rendered}")
    except (KeyboardInterrupt, EOFError):
        print()

    print("Thank you for using calc-pad!")


def run_one_shot(expression: str) -> int:
    result = Document([expression]).results[0]
    if result.kind is ResultKind.VALUE:
        print(f"{expression} = {result.display}")
        return 0
    if result.kind is ResultKind.ERROR:
        print(f"{expression} = Error: {result.message}")
    else:
        print(f"{expression} = (invalid expression)")
    return 1


def run_file_mode(path: str) -> int:
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        logger.error(f"Cannot read notepad file '{path}': {e}")
        return 1
    print_document(Document(deserialize_lines(content)))
    return 0


# --- Entry Points ---
def start_web_server(host: str = HOST, port: int = PORT):
    """Entry point for running the web server."""
    print(f"Starting web server on http://{host}:{port}")
    app.run(host=host, port=port)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="calc-pad", description="Unit-aware notepad calculator"
    )
    parser.add_argument("expression", nargs="*", help="Evaluate one expression and exit")
    parser.add_argument("--file", "-f", help="Evaluate every line of a notepad file")
    parser.add_argument("--serve", action="store_true", help="Run the JSON API server")
    parser.add_argument("--host", default=HOST, help=f"Server host (default {HOST})")
    parser.add_argument("--port", type=int, default=PORT, help=f"Server port (default {PORT})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point that picks server, file, one-shot or interactive mode."""
    args = build_arg_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.serve:
        start_web_server(args.host, args.port)
        return 0
    if args.file:
        return run_file_mode(args.file)
    if args.expression:
        return run_one_shot(" ".join(args.expression))

    run_cli_mode()
    return 0


if __name__ == "__main__":
    sys.exit(main())
