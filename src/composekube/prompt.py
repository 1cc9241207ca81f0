"""Interactive yes/no confirmation."""

from collections.abc import Callable

from composekube.exceptions import InputError

MAX_ATTEMPTS = 3


def ask_for_confirmation(
    question: str,
    input_func: Callable[[str], str] | None = None,
    max_attempts: int = MAX_ATTEMPTS,
) -> bool:
    """Ask a yes/no question until a valid answer is given.

    Args:
        question: Prompt shown for the first attempt
        input_func: Function reading one line of input (default: input)
        max_attempts: Number of answers accepted before giving up

    Returns:
        True for "yes", False for "no"

    Raises:
        InputError: If no valid answer is given within max_attempts
            or input is closed
    """
    input_func = input_func or input
    prompt = question
    for _ in range(max_attempts):
        try:
            response = input_func(prompt)
        except EOFError as e:
            raise InputError("No answer given: input closed") from e

        response = response.strip().lower()
        if response == "yes":
            return True
        if response == "no":
            return False
        prompt = "Please type yes or no and then press enter: "

    raise InputError(f"No valid answer after {max_attempts} attempts")
