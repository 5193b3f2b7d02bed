"""
Category Scoring Helper

This module provides pure functions to tally yes answers per category and to
pick the dominant category. Session state (the tally and the set of questions
that already contributed) is passed in and returned, never held globally.
"""

CATEGORIES = ("A", "B", "C")
DEFAULT_TIE_LABEL = "Mixed"
DEFAULT_YES_VALUE = "1"
DEFAULT_NO_VALUE = "2"


def empty_tally(categories=CATEGORIES):
    """Return a tally with every category at zero."""
    return {category: 0 for category in categories}


def update_category_tally(tally, counted, question_id, answer, category,
                          positive_value=DEFAULT_YES_VALUE):
    """
    Apply one answer to the category tally.

    A question contributes at most once per session: once it has been
    counted, later evaluations of the same question key leave the tally alone.

    Args:
        tally: Dictionary of category -> count
        counted: Collection of question ids that already contributed
        question_id: Key of the answered question
        answer: Answer value as submitted
        category: Category the question scores
        positive_value: Answer value that counts as "yes"

    Returns:
        tuple: (new_tally, new_counted)
    """
    counted = frozenset(counted)
    if question_id in counted or str(answer) != positive_value:
        return dict(tally), counted

    new_tally = dict(tally)
    new_tally[category] = new_tally.get(category, 0) + 1
    return new_tally, counted | {question_id}


def tally_answers(answers, questions, positive_value=DEFAULT_YES_VALUE, categories=CATEGORIES):
    """
    Tally a complete answer set.

    Args:
        answers: Dictionary of question_id -> answer_value
        questions: Dictionary of question_id -> category
        positive_value: Answer value that counts as "yes"

    Returns:
        dict: category -> count
    """
    tally = empty_tally(categories)
    counted = frozenset()
    for question_id, answer in answers.items():
        category = questions.get(question_id)
        if category is None:
            continue
        tally, counted = update_category_tally(
            tally, counted, question_id, answer, category, positive_value
        )
    return tally


def dominant_category(tally, tie_label=DEFAULT_TIE_LABEL):
    """
    Determine the dominant category of a tally.

    Returns:
        str: The single category holding the maximum count, ``tie_label`` when
        two or more categories share it, or None for an empty tally.
    """
    if not tally:
        return None

    highest = max(tally.values())
    leaders = [category for category, count in tally.items() if count == highest]
    if len(leaders) == 1:
        return leaders[0]
    return tie_label


def answer_totals(answers, yes_value=DEFAULT_YES_VALUE, no_value=DEFAULT_NO_VALUE):
    """
    Count yes and no answers.

    Returns:
        tuple: (total_yes, total_no, total_questions)
    """
    values = [str(value) for value in answers.values()]
    total_yes = sum(1 for value in values if value == yes_value)
    total_no = sum(1 for value in values if value == no_value)
    return total_yes, total_no, len(values)
