"""Image prompt construction.

Examples:
    >>> from companion.prompts.image import get_prompt
    >>> get_prompt("make her wear a red coat", has_reference=True)
"""

IDENTITY_INSTRUCTION = (
    "Edit the provided reference image. Keep the person's face, identity and "
    "distinguishing features exactly as they are in the reference."
)


def get_prompt(prompt: str, has_reference: bool = False) -> str:
    """Get the final image prompt.

    Args:
        prompt: The user's image prompt
        has_reference: Whether a reference image accompanies the prompt

    Returns:
        Prompt text, with the identity instruction prepended for edits
    """
    prompt = " ".join(prompt.split())
    if has_reference and prompt:
        return f"{IDENTITY_INSTRUCTION}\n\n{prompt}"
    return prompt
