"""Questions for the membership verification quiz and their grading."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Tuple


@dataclass(frozen=True, slots=True)
class Question:
	id: int
	prompt: str
	options: Tuple[str, ...]
	correct_index: int

	def public(self) -> Dict[str, object]:
		return {"id": self.id, "prompt": self.prompt, "options": list(self.options)}


QUESTIONS: Tuple[Question, ...] = (
	Question(
		id=1,
		prompt="¿Cuántos años tiene un Aprendiz?",
		options=("Tres años", "Cinco años", "Siete años", "Un año"),
		correct_index=0,
	),
	Question(
		id=2,
		prompt="¿Cuál es la posición del Aprendiz en Logia?",
		options=("Columna del Sur", "Columna del Norte", "Al Oriente", "Al Occidente"),
		correct_index=1,
	),
	Question(
		id=3,
		prompt="¿Cuáles son las herramientas del Aprendiz?",
		options=(
			"Compás y Escuadra",
			"Martillo y Cincel",
			"Regla de 24 pulgadas y Mazo",
			"Nivel y Plomada",
		),
		correct_index=2,
	),
	Question(
		id=4,
		prompt="¿Qué representa la Piedra Bruta?",
		options=(
			"La perfección alcanzada",
			"El trabajo del Compañero",
			"El Aprendiz sin pulir, trabajo por hacer",
			"La culminación del viaje",
		),
		correct_index=2,
	),
)


def public_questions() -> List[Dict[str, object]]:
	return [question.public() for question in QUESTIONS]


def grade(answers: Mapping[int, int]) -> int:
	"""Count correct answers. Unknown question ids are ignored."""
	by_id = {question.id: question for question in QUESTIONS}
	correct = 0
	for question_id, choice in answers.items():
		question = by_id.get(int(question_id))
		if question is not None and choice == question.correct_index:
			correct += 1
	return correct
