"""
Branch evaluation for conditional edges.

A condition is a small comparison string such as ``quality > 0.8`` or
``status == 'ok'``. Conditions only route edges leaving a decision node whose
output carries a boolean ``decision``; on any other edge they are ignored.

An affirmative condition (``>``, ``>=``, ``==``) holds when the decision is
true or the named field satisfies it. Its complement (``<=``, ``<``, ``!=``)
holds exactly when the affirmative form does not, so complementary branches
are mutually exclusive. When the decision node echoes its own condition and
that condition is the negative form, the boolean is read accordingly.
"""

import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from ..data_models.workflow_spec import EdgeSpec, NodeSpec
from .constants import ConditionPolicy, get_condition_policy
from .errors import EvaluationError
from .io_logger import get_component_logger

logger = get_component_logger("BRANCH_EVALUATOR")

_CONDITION_RE = re.compile(
    r"^\s*(?P<field>[A-Za-z_][\w.]*)\s*(?P<op>>=|<=|==|!=|>|<)\s*(?P<value>.+?)\s*$"
)

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}

_COMPLEMENTS = {">": "<=", "<=": ">", "<": ">=", ">=": "<", "==": "!=", "!=": "=="}

# A true decision satisfies these.
_AFFIRMATIVE = {">", ">=", "=="}


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Union[float, bool, str]

    def same_test(self, other: "Condition") -> bool:
        return self.field == other.field and self.value == other.value

    def complement(self) -> "Condition":
        return Condition(field=self.field, op=_COMPLEMENTS[self.op], value=self.value)

    def evaluate(self, actual: Any) -> bool:
        if isinstance(self.value, float) and not isinstance(actual, bool):
            if not isinstance(actual, (int, float)):
                raise EvaluationError(
                    f"Field '{self.field}' is {type(actual).__name__}, expected a number"
                )
        try:
            return bool(_OPERATORS[self.op](actual, self.value))
        except TypeError as e:
            raise EvaluationError(f"Cannot compare {self.field}={actual!r} {self.op} {self.value!r}") from e


def parse_condition(text: Optional[str]) -> Optional[Condition]:
    """Parse ``field op literal``; None when the text is not in that shape."""
    if not text:
        return None
    match = _CONDITION_RE.match(text)
    if not match:
        return None
    raw = match.group("value")
    value: Union[float, bool, str]
    if raw.lower() in ("true", "false"):
        value = raw.lower() == "true"
    elif len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "'\"":
        value = raw[1:-1]
    else:
        try:
            value = float(raw)
        except ValueError:
            return None
    return Condition(field=match.group("field"), op=match.group("op"), value=value)


def _lookup(output: Dict[str, Any], dotted: str) -> Any:
    current: Any = output
    for part in dotted.split("."):
        if not isinstance(current, dict) or part not in current:
            raise KeyError(dotted)
        current = current[part]
    return current


class BranchEvaluator:
    """Decides whether a conditional edge is followed."""

    def __init__(self, policy: Optional[ConditionPolicy] = None):
        self.policy = policy or get_condition_policy()

    def _default(self, edge: EdgeSpec, reason: str) -> bool:
        follow = self.policy == ConditionPolicy.FAIL_OPEN
        logger.warning(
            f"Unrecognized condition on edge {edge.id}: {'following' if follow else 'not following'}",
            data={"condition": edge.condition, "reason": reason, "policy": self.policy.value},
        )
        return follow

    def should_follow(self, edge: EdgeSpec, source_output: Any, source_node: Optional[NodeSpec] = None) -> bool:
        if not edge.condition:
            return True
        if source_node is not None and not source_node.is_decision:
            logger.debug(f"Condition on edge {edge.id} ignored: {source_node.id} is not a decision node")
            return True
        if not isinstance(source_output, dict) or not isinstance(source_output.get("decision"), bool):
            logger.debug(f"Condition on edge {edge.id} ignored: output of {edge.source} carries no decision")
            return True
        return self._evaluate(edge, source_output)

    def _evaluate(self, edge: EdgeSpec, output: Dict[str, Any]) -> bool:
        condition = parse_condition(edge.condition)
        if condition is None:
            return self._default(edge, "unparseable condition")

        affirmative = condition.op in _AFFIRMATIVE
        test = condition if affirmative else condition.complement()
        holds = self._verdict(output, test) or self._metric_holds(edge, output, test)
        return holds if affirmative else not holds

    @staticmethod
    def _verdict(output: Dict[str, Any], test: Condition) -> bool:
        """The decision boolean, read as the outcome of ``test``."""
        decision = output["decision"]
        own = parse_condition(output.get("condition"))
        if own is not None and own.same_test(test) and own.op == _COMPLEMENTS[test.op]:
            return not decision
        return decision

    @staticmethod
    def _metric_holds(edge: EdgeSpec, output: Dict[str, Any], test: Condition) -> bool:
        try:
            return test.evaluate(_lookup(output, test.field))
        except KeyError:
            return False
        except EvaluationError as e:
            logger.debug(f"Edge {edge.id} routed on decision alone: {e}")
            return False
