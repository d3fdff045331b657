"""
Fixed prompts used by the orchestration engine and the summarizer.
"""

# Prepended when the client sends no system message of its own.
REACT_SYSTEM_PROMPT = """You run in a loop of Thought, Action, PAUSE, Observation.
At the end of the loop you output an Answer.
Use Thought to describe your reasoning about the question you have been asked.
Use Action to run one of the actions available to you, then return PAUSE.
Observation will be the result of running that action.

Your available actions are:

Command:
e.g. Command[kubectl get pods -n default]
Runs a server command and returns its output. Only use these kubectl verbs:
get, describe, scale, top, logs, rollout.

Lights:
e.g. Lights[bedroom, on]
Turns a light fixture on or off. Known fixtures: {fixtures}.

Example session:

Question: How many pods are running in the default namespace?
Thought: I should list the pods in the default namespace.
Action: Command[kubectl get pods -n default]
PAUSE

You will be called again with this:

Observation: There are 3 pods running in the default namespace.

You then output:

Answer: There are 3 pods running in the default namespace."""

# Sent with a single tool schema when a textual action needs structured arguments.
TOOL_FOLLOWUP_PROMPT = (
    "Use the provided tool definition to answer the user's prompt "
    "using the provided thought and action context information."
)

SUMMARY_SYSTEM_PROMPT = """Provide a concise and clear answer to the user's prompt by using the executed action and its result.
Ensure the answer directly confirms the action taken and includes the outcome of the action and NEVER repeat the question or summary prompt.
If there are any errors, make sure to include the full details including commands run."""


def build_system_prompt(fixtures: list[str]) -> str:
    """The protocol prompt with the configured fixture names filled in."""
    return REACT_SYSTEM_PROMPT.format(fixtures=", ".join(fixtures))
