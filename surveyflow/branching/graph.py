"""
FlowGraph - immutable snapshot of a survey's questions and conditional rules.

Questions live in an arena indexed by id and ordered by their ordinal
position. Rules are indexed by source question in declared order. The graph
is validated once at build time:

- duplicate question ids are rejected
- dangling rule references are rejected in strict (publish) mode and kept,
  with a warning, otherwise
- any cycle through skip_to edges is rejected, which guarantees that flow
  resolution always terminates

Adaptive follow-ups never mutate a graph; `with_inserted` returns a new
graph with a higher revision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..errors import CycleDetectedError, RuleConfigurationError
from ..schemas.survey import ActionType, ConditionalRule, Question, TARGETED_ACTIONS


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphInsertion:
    """Record of one adaptive edit applied to a graph."""
    revision: int
    after_question_id: str
    question_ids: tuple[str, ...]


class FlowGraph:
    """Read-only question graph for one survey version."""

    def __init__(
        self,
        questions: Sequence[Question],
        rules: Sequence[ConditionalRule],
        survey_id: str = "",
        version: int = 1,
        revision: int = 0,
        issues: Sequence[RuleConfigurationError] = (),
        insertions: Sequence[GraphInsertion] = (),
    ):
        # Callers go through build(); the constructor trusts its input.
        self.survey_id = survey_id
        self.version = version
        self.revision = revision
        self._questions: tuple[Question, ...] = tuple(questions)
        self._rules: tuple[ConditionalRule, ...] = tuple(rules)
        self._issues = tuple(issues)
        self._insertions = tuple(insertions)

        self._by_id = {q.id: q for q in self._questions}
        self._position = {q.id: i for i, q in enumerate(self._questions)}
        rules_by_source: dict[str, list[ConditionalRule]] = {}
        for rule in self._rules:
            rules_by_source.setdefault(rule.source_question_id, []).append(rule)
        self._rules_by_source = {k: tuple(v) for k, v in rules_by_source.items()}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        questions: Iterable[Question],
        rules: Iterable[ConditionalRule],
        survey_id: str = "",
        version: int = 1,
        strict: bool = True,
    ) -> "FlowGraph":
        """
        Validate and build a graph.

        Args:
            questions: Survey questions in any order
            rules: Conditional rules in declared order
            survey_id: Owning survey
            version: Survey version this graph snapshots
            strict: Reject dangling rule references (publish-time check)

        Raises:
            RuleConfigurationError: duplicate question ids, or dangling
                references when strict
            CycleDetectedError: skip_to edges form a cycle
        """
        indexed = list(enumerate(questions))
        seen = set()
        for _, q in indexed:
            if q.id in seen:
                raise RuleConfigurationError(f"Duplicate question id '{q.id}'", question_id=q.id)
            seen.add(q.id)

        # Stable ordering: ordinal position first, then input order
        ordered = [q for _, q in sorted(indexed, key=lambda item: (item[1].order, item[0]))]
        rule_list = list(rules)

        issues = cls._check_references(ordered, rule_list)
        if issues and strict:
            raise issues[0]
        for issue in issues:
            logger.warning("Survey %s v%s: %s", survey_id or "?", version, issue)

        cycle = cls._find_cycle(ordered, rule_list)
        if cycle:
            raise CycleDetectedError(cycle)

        graph = cls(ordered, rule_list, survey_id=survey_id, version=version, issues=issues)
        logger.info(
            "Built flow graph for survey %s v%s: %d questions, %d rules",
            survey_id or "?", version, len(ordered), len(rule_list),
        )
        return graph

    @staticmethod
    def _check_references(
        questions: list[Question],
        rules: list[ConditionalRule],
    ) -> list[RuleConfigurationError]:
        known = {q.id for q in questions}
        issues = []
        for rule in rules:
            if rule.source_question_id not in known:
                issues.append(RuleConfigurationError(
                    f"Rule '{rule.rule_id}' has unknown source question '{rule.source_question_id}'",
                    rule_id=rule.rule_id,
                    question_id=rule.source_question_id,
                ))
            target = rule.target_question_id
            if rule.action.type in TARGETED_ACTIONS and target not in known:
                issues.append(RuleConfigurationError(
                    f"Rule '{rule.rule_id}' targets unknown question '{target}'",
                    rule_id=rule.rule_id,
                    question_id=target or "",
                ))
            if rule.condition.known_operator is None:
                # Malformed operators never block publishing; the rule just never fires
                logger.warning(
                    "Rule '%s' uses unknown operator %r and will never fire",
                    rule.rule_id, rule.condition.operator,
                )
        return issues

    @staticmethod
    def _find_cycle(questions: list[Question], rules: list[ConditionalRule]) -> Optional[list[str]]:
        """
        Depth-first search for a cycle over the flow edges.

        Edges are the ordinal successor chain plus every skip_to edge, so a
        skip_to pointing at or before its own source closes a loop and is
        reported together with the path it loops through.
        """
        known = {q.id for q in questions}
        edges: dict[str, list[str]] = {q.id: [] for q in questions}
        for current, following in zip(questions, questions[1:]):
            edges[current.id].append(following.id)
        for rule in rules:
            if rule.action.type != ActionType.SKIP_TO:
                continue
            source, target = rule.source_question_id, rule.target_question_id
            if source in known and target in known:
                edges[source].append(target)

        white, grey, black = 0, 1, 2
        color = {qid: white for qid in edges}
        parent: dict[str, Optional[str]] = {}

        for root in edges:
            if color[root] != white:
                continue
            stack = [(root, iter(edges[root]))]
            color[root] = grey
            parent[root] = None
            while stack:
                node, children = stack[-1]
                advanced = False
                for child in children:
                    if color[child] == white:
                        color[child] = grey
                        parent[child] = node
                        stack.append((child, iter(edges[child])))
                        advanced = True
                        break
                    if color[child] == grey:
                        # Walk back from node to child to recover the loop
                        path = [node]
                        while path[-1] != child:
                            path.append(parent[path[-1]])
                        path.reverse()
                        path.append(child)
                        return path
                if not advanced:
                    color[node] = black
                    stack.pop()
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def questions(self) -> tuple[Question, ...]:
        return self._questions

    @property
    def rules(self) -> tuple[ConditionalRule, ...]:
        return self._rules

    @property
    def issues(self) -> tuple[RuleConfigurationError, ...]:
        """Reference problems tolerated by a non-strict build."""
        return self._issues

    @property
    def insertions(self) -> tuple[GraphInsertion, ...]:
        return self._insertions

    @property
    def question_ids(self) -> tuple[str, ...]:
        return tuple(q.id for q in self._questions)

    def __len__(self) -> int:
        return len(self._questions)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._by_id

    def get(self, question_id: Optional[str]) -> Optional[Question]:
        if question_id is None:
            return None
        return self._by_id.get(question_id)

    def position(self, question_id: str) -> int:
        """Zero-based position in ordinal order. Raises KeyError if unknown."""
        return self._position[question_id]

    def first(self) -> Optional[Question]:
        return self._questions[0] if self._questions else None

    def rules_for(self, question_id: str) -> tuple[ConditionalRule, ...]:
        """Rules whose source is `question_id`, in declared order."""
        return self._rules_by_source.get(question_id, ())

    def questions_after(self, question_id: str) -> tuple[Question, ...]:
        return self._questions[self._position[question_id] + 1:]

    def questions_between(self, start_id: str, end_id: str) -> tuple[Question, ...]:
        """Questions strictly between two positions."""
        return self._questions[self._position[start_id] + 1:self._position[end_id]]

    def show_targets(self) -> frozenset[str]:
        """Questions that some show_question rule can reveal."""
        return frozenset(
            r.target_question_id for r in self._rules
            if r.action.type == ActionType.SHOW_QUESTION and r.target_question_id in self._by_id
        )

    # ------------------------------------------------------------------
    # Adaptive edits
    # ------------------------------------------------------------------

    def with_inserted(self, after_question_id: str, new_questions: Sequence[Question]) -> "FlowGraph":
        """
        Return a new graph with `new_questions` placed right after
        `after_question_id`. Ordinal positions are reassigned; the revision
        goes up by one. The receiver is left untouched.
        """
        if after_question_id not in self._by_id:
            raise KeyError(after_question_id)
        if not new_questions:
            return self
        for q in new_questions:
            if q.id in self._by_id:
                raise ValueError(f"Question id '{q.id}' already exists in the flow")

        at = self._position[after_question_id] + 1
        merged = list(self._questions[:at]) + list(new_questions) + list(self._questions[at:])
        renumbered = [q.with_order(i + 1) for i, q in enumerate(merged)]

        revision = self.revision + 1
        insertion = GraphInsertion(
            revision=revision,
            after_question_id=after_question_id,
            question_ids=tuple(q.id for q in new_questions),
        )
        return FlowGraph(
            renumbered,
            self._rules,
            survey_id=self.survey_id,
            version=self.version,
            revision=revision,
            issues=self._issues,
            insertions=self._insertions + (insertion,),
        )

    def to_dict(self) -> dict:
        return {
            "survey_id": self.survey_id,
            "version": self.version,
            "revision": self.revision,
            "questions": [q.to_dict() for q in self._questions],
            "rules": [r.to_dict() for r in self._rules],
            "insertions": [
                {
                    "revision": i.revision,
                    "after_question_id": i.after_question_id,
                    "question_ids": list(i.question_ids),
                }
                for i in self._insertions
            ],
        }
