import sys
import argparse

PROMPT_TEMPLATE = """You are helping a developer who just hit an error in their shell session.
Explain in plain language what the error below means and cite the most likely cause, using the position and script shown.
Then list up to three search terms the developer could use to find more help.
Answer using exactly these two section headers:
## Explanation
## Search Terms

Error message:
{message}

Position:
{position}

Script:
{script}
"""

CONSOLE_ORIGIN = "The error occurred in an interactive console, not in a script file."


def read_script(path: str) -> str:
    # OSError / UnicodeDecodeError propagate: no prompt without the script
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def build_prompt(message: str, position: str, script_path: str = None) -> str:
    """
    Build the debugging prompt. Inputs are inserted verbatim: no escaping,
    stripping or length limits, and placeholder-like text inside them is
    left as is.
    """
    script = read_script(script_path) if script_path else CONSOLE_ORIGIN
    return PROMPT_TEMPLATE.format(message=message, position=position, script=script)


def build_prompt_for(context) -> str:
    return build_prompt(context.message, context.position, context.script_path)


def main():
    ap = argparse.ArgumentParser(description="Print the debugging prompt for an error without sending it.")
    ap.add_argument("--message", required=True)
    ap.add_argument("--position", default="")
    ap.add_argument("--script", default=None, help="Path of the script that raised the error")
    args = ap.parse_args()

    sys.stdout.write(build_prompt(args.message, args.position, args.script))


if __name__ == "__main__":
    main()
