"""
Interactive Project Selector

Turns a human's choice at the console into a concrete subset of projects.
Shared by the webhook provisioner and the team membership report; it knows
nothing about either task.

Three modes are offered:
  1: pick projects by number (single numbers and ranges, e.g. "1,3 5-7")
  2: exclude projects by name (comma-separated, case-insensitive substrings)
  3: all projects
An empty answer at the mode prompt cancels the selection.
"""
import enum
import logging
import re
from dataclasses import dataclass

log = logging.getLogger(__name__)

AFFIRMATIVE_ANSWERS = ("y", "yes")

_NUMBER_SEPARATORS = re.compile(r"[,\s]+")
_NUMBER_TOKEN = re.compile(r"^([0-9]+)(?:-([0-9]+))?$")


@dataclass(frozen=True)
class Project:
    id: str
    name: str

    @classmethod
    def from_api(cls, data):
        """Builds a Project from an API record, or returns None when it has no id."""
        project_id = data.get("id")
        if not project_id:
            return None
        return cls(id=str(project_id), name=data.get("name") or "")


def projects_from_api(records):
    """Converts API project records, skipping (and logging) any without an id."""
    projects = []
    for record in records:
        project = Project.from_api(record)
        if project is None:
            log.warning(f"Skipping project record without an id: {record.get('name') or record!r}")
            continue
        projects.append(project)
    return projects


class SelectionMode(enum.Enum):
    BY_NUMBER = "1"
    BY_EXCLUSION = "2"
    ALL = "3"
    CANCELLED = ""


class _State(enum.Enum):
    MODE_PROMPT = "mode"
    BY_NUMBER = "number"
    BY_EXCLUSION = "exclusion"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class InvalidSelection(ValueError):
    """Raised by the parsers for input that must be rejected as a whole."""


def dedupe_by_id(projects):
    """Drops later duplicates (by id), keeping first-seen order."""
    seen = set()
    unique = []
    for project in projects:
        if project.id not in seen:
            seen.add(project.id)
            unique.append(project)
    return unique


def sort_by_name(projects):
    return sorted(projects, key=lambda p: p.name)


def parse_number_selection(text, count):
    """
    Parses free-form number input into 1-based indices.

    The input is split on any run of commas and/or whitespace. Each token must
    be a single number or an inclusive range "A-B"; a descending range such as
    "5-3" covers the same indices as "3-5". Validation is all-or-nothing: one
    malformed token or one index outside [1, count] rejects the whole input.

    Args:
        text (str): The raw input line
        count (int): Number of selectable projects

    Returns:
        list: Indices in input order (duplicates kept)

    Raises:
        InvalidSelection: If any token is malformed or any index is out of range
    """
    tokens = [t for t in _NUMBER_SEPARATORS.split(text.strip()) if t]
    indices = []
    for token in tokens:
        match = _NUMBER_TOKEN.match(token)
        if not match:
            raise InvalidSelection(f"'{token}' is not a number or a range like 2-5.")
        try:
            start = int(match.group(1))
            end = int(match.group(2)) if match.group(2) is not None else start
        except ValueError:
            # int() refuses digit strings past the interpreter's length limit.
            raise InvalidSelection(f"'{token[:20]}...' is out of range; choose between 1 and {count}.") from None
        for bound in (start, end):
            if bound < 1 or bound > count:
                raise InvalidSelection(f"{bound} is out of range; choose between 1 and {count}.")
        step = 1 if end >= start else -1
        indices.extend(range(start, end + step, step))
    return indices


def parse_exclusion_terms(text):
    return [term.strip() for term in text.split(",") if term.strip()]


def match_projects(projects, term):
    """Returns the projects whose name contains term, ignoring case."""
    needle = term.casefold()
    return [p for p in projects if needle in p.name.casefold()]


class ProjectSelector:
    """
    Drives the interactive selection as a small state machine.

    Every invalid answer leads back to a prompt; nothing in here raises for
    bad user input. The prompt and output callables default to input() and
    print() and can be swapped out to drive the selector from elsewhere.
    """

    def __init__(self, projects, prompt=input, out=print):
        self.projects = list(projects)
        self._prompt = prompt
        self._out = out

    def _ask(self, message):
        return self._prompt(message).strip()

    def run(self):
        """
        Runs the selection until the user confirms or cancels.

        Returns:
            list: The selected projects, or an empty list when cancelled
        """
        if not self.projects:
            self._out("No projects available to select from.")
            return []

        state = _State.MODE_PROMPT
        selection = []
        try:
            while state not in (_State.CONFIRMED, _State.CANCELLED):
                if state is _State.MODE_PROMPT:
                    state, selection = self._mode_prompt()
                elif state is _State.BY_NUMBER:
                    state, selection = self._select_by_number()
                elif state is _State.BY_EXCLUSION:
                    state, selection = self._select_by_exclusion()
        except EOFError:
            self._out("No input provided. Selection cancelled.")
            return []

        if state is _State.CANCELLED:
            log.info("Project selection cancelled.")
            return []
        log.info(f"Selected {len(selection)} of {len(self.projects)} projects.")
        return selection

    def _mode_prompt(self):
        while True:
            self._out("")
            self._out("How would you like to select projects?")
            self._out("  1: Select projects by number")
            self._out("  2: Exclude projects by name")
            self._out("  3: All projects")
            self._out("  (press Enter to cancel)")
            try:
                mode = SelectionMode(self._ask("Enter your choice [1/2/3]: "))
            except ValueError:
                self._out("Invalid choice. Please enter 1, 2 or 3.")
                continue

            if mode is SelectionMode.CANCELLED:
                return _State.CANCELLED, []
            if mode is SelectionMode.ALL:
                self._out(f"All {len(self.projects)} projects selected.")
                return _State.CONFIRMED, list(self.projects)
            if mode is SelectionMode.BY_NUMBER:
                return _State.BY_NUMBER, []
            return _State.BY_EXCLUSION, []

    def _select_by_number(self):
        self._out("")
        self._out("Available projects:")
        for i, project in enumerate(self.projects, start=1):
            self._out(f"  {i}: {project.name}")

        while True:
            text = self._ask("Enter project numbers (e.g. 1,3 5-7), or press Enter to go back: ")
            if not text:
                return _State.MODE_PROMPT, []
            try:
                indices = parse_number_selection(text, len(self.projects))
            except InvalidSelection as e:
                self._out(f"Invalid selection: {e} Please try again.")
                continue

            chosen = sort_by_name(dedupe_by_id(self.projects[i - 1] for i in indices))
            if not chosen:
                self._out("No projects selected. Please try again.")
                continue
            if self._confirm(chosen):
                return _State.CONFIRMED, chosen

    def _select_by_exclusion(self):
        self._out("")
        self._out("Available projects:")
        for project in sort_by_name(self.projects):
            self._out(f"  - {project.name}")

        while True:
            text = self._ask("Enter names to exclude, comma-separated (partial match), or press Enter to go back: ")
            if not text:
                return _State.MODE_PROMPT, []

            excluded = []
            for term in parse_exclusion_terms(text):
                matches = match_projects(self.projects, term)
                if matches:
                    self._out(f"'{term}' matches: {', '.join(p.name for p in matches)}")
                    excluded.extend(matches)
                else:
                    self._out(f"No projects match '{term}'.")
            excluded = dedupe_by_id(excluded)
            if not excluded:
                self._out("Nothing to exclude. Please try again.")
                continue

            excluded_ids = {p.id for p in excluded}
            remaining = [p for p in self.projects if p.id not in excluded_ids]
            if not remaining:
                self._out("That would exclude every project. Please try again.")
                continue
            self._out(f"Excluding {len(excluded)} project(s).")
            if self._confirm(remaining):
                return _State.CONFIRMED, remaining

    def _confirm(self, selection):
        self._out("")
        self._out(f"Selected {len(selection)} project(s):")
        for project in selection:
            self._out(f"  - {project.name}")
        answer = self._ask("Proceed with this selection? [y/N]: ").lower()
        if answer in AFFIRMATIVE_ANSWERS:
            return True
        self._out("Selection discarded.")
        return False


def select_projects(projects, prompt=input, out=print):
    """
    Interactively resolves a project list to the subset to operate on.

    Args:
        projects (list): Project objects to choose from
        prompt (callable): Reads one line of input given a prompt message
        out (callable): Writes one line of output

    Returns:
        list: Selected projects; empty means the caller should stop
    """
    return ProjectSelector(projects, prompt=prompt, out=out).run()
