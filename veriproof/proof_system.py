"""VeriProof Proof System — proof store, step construction and validation.

Proofs live in an arena keyed by opaque uuid handles.  Construction is
append-only; validation reads the step list and stores a snapshot on the
proof, so running it again on an unchanged proof gives the same result.

Validation checks, per step:
  INVALID_INFERENCE   (HIGH)      rule not registered
  MISSING_PREMISE     (HIGH)      reference is not an assumption index or
                                  an earlier step id
  CIRCULAR_REASONING  (CRITICAL)  a cycle is reachable from the premises
  COMPLEX_FORMULA     (warning)   more than ``max_premises_per_step`` premises

and for the whole proof:
  LOGICAL_INCONSISTENCY (CRITICAL) last conclusion differs from the goal
  REDUNDANT_PREMISE     (warning)  assumption never cited
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Set, Tuple

from veriproof.errors import proof_not_found, malformed_premise
from veriproof.formulas import LogicalFormula, count_logical_operators
from veriproof.proof import (
    Proof, ProofStep, InferenceRule, Lemma, ProofComplexity, ProofValidity,
    ErrorSeverity, ProofError, ProofErrorKind, ProofWarning, Suggestion,
    ValidationResult, parse_reference, step_id,
)
from veriproof.rules import standard_rules, standard_lemmas

logger = logging.getLogger(__name__)

DEFAULT_LEMMA_THRESHOLD = 10
DEFAULT_MAX_PREMISES = 5


def step_confidence(rule: InferenceRule, premise_count: int) -> float:
    confidence = 0.9 if rule.soundness else 0.5
    confidence *= max(0.5, 1 - premise_count * 0.1)
    return max(0.1, min(1.0, confidence))


class ProofSystem:
    """Registry of rules and lemmas plus the store of proofs built with them."""

    def __init__(self, lemma_threshold: int = DEFAULT_LEMMA_THRESHOLD,
                 max_premises_per_step: int = DEFAULT_MAX_PREMISES):
        self.lemma_threshold = lemma_threshold
        self.max_premises_per_step = max_premises_per_step
        self._proofs: Dict[str, Proof] = {}
        self._rules: Dict[str, InferenceRule] = {}
        self._lemmas: Dict[str, Lemma] = {}
        for rule in standard_rules():
            self.register_inference_rule(rule)
        for lemma in standard_lemmas():
            self.register_lemma(lemma)

    # -- registries ------------------------------------------------------

    def register_inference_rule(self, rule: InferenceRule) -> None:
        self._rules[rule.name] = rule

    def register_lemma(self, lemma: Lemma) -> None:
        self._lemmas[lemma.name] = lemma

    def inference_rule(self, name: str) -> Optional[InferenceRule]:
        return self._rules.get(name)

    @property
    def inference_rules(self) -> Dict[str, InferenceRule]:
        return dict(self._rules)

    @property
    def lemmas(self) -> Dict[str, Lemma]:
        return dict(self._lemmas)

    # -- construction ----------------------------------------------------

    def create_proof(self, premises: Sequence[LogicalFormula], conclusion: LogicalFormula,
                     lemmas: Optional[Sequence[Lemma]] = None) -> Proof:
        if lemmas is None:
            lemmas = list(self._lemmas.values())
        proof = Proof(list(premises), conclusion, list(lemmas))
        self._proofs[proof.id] = proof
        logger.debug("created proof %s for %s", proof.id, conclusion.expression)
        return proof

    def get_proof(self, proof_id: str) -> Proof:
        proof = self._proofs.get(proof_id)
        if proof is None:
            raise proof_not_found(proof_id)
        return proof

    def proofs(self) -> List[Proof]:
        return list(self._proofs.values())

    def add_proof_step(self, proof_id: str, rule: InferenceRule, premises: Sequence[str],
                       conclusion: LogicalFormula, justification: str = "") -> ProofStep:
        """Append a step; references are checked for form, not resolvability."""
        proof = self.get_proof(proof_id)
        for ref in premises:
            if parse_reference(ref) is None:
                raise malformed_premise(ref)

        number = len(proof.steps) + 1
        step = ProofStep(
            id=step_id(number),
            step_number=number,
            rule=rule,
            premises=tuple(premises),
            conclusion=conclusion,
            justification=justification,
            confidence=step_confidence(rule, len(premises)),
        )
        proof._append_step(step)
        proof.complexity = compute_complexity(proof)
        return step

    # -- validation ------------------------------------------------------

    def validate_proof(self, proof_id: str) -> ValidationResult:
        proof = self.get_proof(proof_id)
        errors: List[ProofError] = []
        warnings: List[ProofWarning] = []

        reaches_cycle, _ = _walk(proof)
        for step in proof.steps:
            step_errors, step_warnings = self._validate_step(step, proof, reaches_cycle)
            errors.extend(step_errors)
            warnings.extend(step_warnings)

        structure_errors, structure_warnings = self._validate_structure(proof)
        errors.extend(structure_errors)
        warnings.extend(structure_warnings)

        is_valid = not any(e.severity >= ErrorSeverity.HIGH for e in errors)
        confidence = proof_confidence(proof, errors, warnings)
        result = ValidationResult(
            is_valid=is_valid,
            confidence=confidence,
            errors=errors,
            warnings=warnings,
            suggestions=self._suggestions(proof),
            metrics=proof_metrics(proof, errors, warnings),
        )
        proof.validation = result
        proof.validity = ProofValidity(is_valid, confidence, ["local-validation"],
                                       [e.message for e in errors])
        logger.debug("validated proof %s: valid=%s confidence=%.3f errors=%d",
                     proof.id, is_valid, confidence, len(errors))
        return result

    def _validate_step(self, step: ProofStep, proof: Proof,
                       reaches_cycle: Set[str]) -> Tuple[List[ProofError], List[ProofWarning]]:
        errors: List[ProofError] = []
        warnings: List[ProofWarning] = []

        if step.rule.name not in self._rules:
            errors.append(ProofError(
                ProofErrorKind.INVALID_INFERENCE, ErrorSeverity.HIGH,
                f"Unknown inference rule: {step.rule.name}", step.id))

        for ref in step.premises:
            if not _premise_available(ref, step, proof):
                errors.append(ProofError(
                    ProofErrorKind.MISSING_PREMISE, ErrorSeverity.HIGH,
                    f"Premise not available: {ref}", step.id))

        if step.id in reaches_cycle:
            errors.append(ProofError(
                ProofErrorKind.CIRCULAR_REASONING, ErrorSeverity.CRITICAL,
                "Circular reasoning detected", step.id))

        if len(step.premises) > self.max_premises_per_step:
            warnings.append(ProofWarning(
                "COMPLEX_FORMULA",
                "Step has many premises, consider simplification", step.id))
        return errors, warnings

    def _validate_structure(self, proof: Proof) -> Tuple[List[ProofError], List[ProofWarning]]:
        errors: List[ProofError] = []
        warnings: List[ProofWarning] = []
        steps = proof.steps

        if steps and steps[-1].conclusion.expression != proof.conclusion.expression:
            errors.append(ProofError(
                ProofErrorKind.LOGICAL_INCONSISTENCY, ErrorSeverity.CRITICAL,
                "Proof does not reach the intended conclusion"))

        cited = {ref for s in steps for ref in s.premises}
        for i, assumption in enumerate(proof.assumptions):
            if f"assumption-{i}" not in cited:
                warnings.append(ProofWarning(
                    "REDUNDANT_PREMISE", f"Unused assumption: {assumption.expression}"))
        return errors, warnings

    def _suggestions(self, proof: Proof) -> List[Suggestion]:
        steps = proof.steps
        suggestions: List[Suggestion] = []
        for current, following in zip(steps, steps[1:]):
            if current.rule.name == following.rule.name:
                suggestions.append(Suggestion(
                    "COMBINE_STEPS",
                    f"Consider combining steps {current.step_number} and {following.step_number}",
                    (current.id, following.id)))
        if proof.complexity.step_count > self.lemma_threshold:
            suggestions.append(Suggestion("ADD_LEMMA", "Consider breaking this proof into lemmas"))
        return suggestions

    # -- reporting -------------------------------------------------------

    def statistics(self) -> Dict[str, object]:
        proofs = list(self._proofs.values())
        validated = [p for p in proofs if p.validity is not None]
        usage = Counter(s.rule.name for p in proofs for s in p.steps)
        return {
            "total_proofs": len(proofs),
            "valid_proofs": sum(1 for p in validated if p.validity.is_valid),
            "average_steps": (sum(len(p.steps) for p in proofs) / len(proofs)) if proofs else 0.0,
            "average_confidence": (sum(p.validity.confidence for p in validated) / len(validated))
            if validated else 0.0,
            "most_used_rules": [name for name, _ in usage.most_common(5)],
        }


# ---------------------------------------------------------------------------
# Graph helpers
# ---------------------------------------------------------------------------

def _premise_available(ref: str, step: ProofStep, proof: Proof) -> bool:
    parsed = parse_reference(ref)
    if parsed is None:
        return False
    kind, index = parsed
    if kind == "assumption":
        return index < len(proof.assumptions)
    return 1 <= index < step.step_number


def _premise_steps(step: ProofStep, proof: Proof) -> List[ProofStep]:
    targets = (proof.step(ref) for ref in step.premises)
    return [t for t in targets if t is not None]


def _walk(proof: Proof) -> Tuple[Set[str], Dict[str, int]]:
    """One depth-first pass over the premise graph.

    Returns the ids of steps from which a cycle is reachable, and the depth
    of every step.  An assumption premise counts 1; a premise still on the
    DFS stack (a back edge) counts 0.
    """
    grey, black = 1, 2
    colour: Dict[str, int] = {}
    reaches_cycle: Set[str] = set()
    depth: Dict[str, int] = {}

    for root in proof.steps:
        if root.id in colour:
            continue
        colour[root.id] = grey
        stack = [(root, iter(_premise_steps(root, proof)))]
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                colour[node.id] = black
                below = [depth.get(t.id, 0) if t is not None else 1
                         for t in (proof.step(ref) for ref in node.premises)]
                depth[node.id] = 1 + max(below, default=0)
                if any(t.id in reaches_cycle for t in _premise_steps(node, proof)):
                    reaches_cycle.add(node.id)
                continue
            state = colour.get(child.id)
            if state is None:
                colour[child.id] = grey
                stack.append((child, iter(_premise_steps(child, proof))))
            elif state == grey:
                reaches_cycle.add(node.id)
    return reaches_cycle, depth


def compute_complexity(proof: Proof) -> ProofComplexity:
    steps = proof.steps
    if not steps:
        return ProofComplexity()
    edges = sum(len(s.premises) for s in steps)
    return ProofComplexity(
        step_count=len(steps),
        depth=max(_walk(proof)[1].values()),
        branching_factor=edges / len(steps),
        cyclomatic_complexity=edges - (len(steps) + len(proof.assumptions)) + 2,
        logical_complexity=sum(count_logical_operators(s.conclusion.expression) for s in steps),
    )


def proof_confidence(proof: Proof, errors: List[ProofError],
                     warnings: List[ProofWarning]) -> float:
    confidence = 1.0
    confidence -= sum(int(e.severity) * 0.2 for e in errors)
    confidence -= len(warnings) * 0.05
    confidence -= min(0.3, proof.complexity.step_count * 0.01)
    return max(0.0, min(1.0, confidence))


def proof_metrics(proof: Proof, errors: List[ProofError],
                  warnings: List[ProofWarning]) -> Dict[str, float]:
    high = sum(1 for e in errors if e.severity >= ErrorSeverity.HIGH)
    return {
        "correctness": 1.0 if not errors else max(0.0, 1 - len(errors) * 0.2),
        "completeness": 0.9 if proof.steps else 0.0,
        "elegance": max(0.0, 1 - proof.complexity.step_count * 0.05),
        "readability": max(0.0, 1 - len(warnings) * 0.1),
        "efficiency": max(0.0, 1 - proof.complexity.cyclomatic_complexity * 0.1),
        "robustness": max(0.0, 1 - high * 0.3),
    }
