# services/skillbridge-service/src/apps/core/services/grading.py
"""
Quiz grading.

Pure functions over questions and submitted answers; nothing here touches
the database beyond reading the questions it is handed.
"""

from typing import Any, Dict, List, Optional, Sequence, Union

from shared.common.utils import round_half_up


def _normalize(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip().lower()


def correct_option_text(question) -> Optional[str]:
    """Text of the option flagged correct, or None if no option is flagged."""
    for option in question.options or []:
        if option.get('is_correct'):
            return option.get('text')
    return None


def grade_answer(question, answer: Any) -> bool:
    """
    Whether a submitted answer is correct.

    Choice questions match the flagged option's text exactly; free-text
    questions compare trimmed, case-insensitive strings.
    """
    if answer is None:
        return False

    if question.is_choice:
        expected = correct_option_text(question)
        return expected is not None and answer == expected

    expected = _normalize(question.correct_answer)
    return bool(expected) and _normalize(answer) == expected


def _answer_for(question, index: int, answers: Union[Sequence[Any], Dict[str, Any]]) -> Any:
    if isinstance(answers, dict):
        return answers.get(str(question.id))
    if index < len(answers):
        return answers[index]
    return None


def grade_quiz(
    questions: List,
    answers: Union[Sequence[Any], Dict[str, Any]],
    passing_score: int,
) -> Dict[str, Any]:
    """
    Grade a full submission.

    Args:
        questions: Questions in quiz order
        answers: Either a list aligned with question order or a dict keyed
            by question id
        passing_score: Minimum score (0-100) needed to pass

    Returns:
        Dict with score, earned_points, max_points, passed and per-question
        results
    """
    earned_points = 0
    max_points = 0
    results = []

    for index, question in enumerate(questions):
        answer = _answer_for(question, index, answers)
        correct = grade_answer(question, answer)
        points = question.points if correct else 0

        max_points += question.points
        earned_points += points
        results.append({
            'question_id': str(question.id),
            'answer': answer,
            'is_correct': correct,
            'points_earned': points,
        })

    score = round_half_up(100 * earned_points / max_points) if max_points else 0
    return {
        'score': score,
        'earned_points': earned_points,
        'max_points': max_points,
        'passed': score >= passing_score,
        'results': results,
    }
