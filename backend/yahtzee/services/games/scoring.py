from collections import Counter
from typing import Dict, List, Sequence

from yahtzee.models import Category
from yahtzee.services.errors import InvalidCategory, InvalidDice

DICE_COUNT = 5
FACES = range(1, 7)

FULL_HOUSE_SCORE = 25
SMALL_STRAIGHT_SCORE = 30
LARGE_STRAIGHT_SCORE = 40
YAHTZEE_SCORE = 50


def validate_dice(dice: Sequence[int]) -> List[int]:
    """Return the five faces as a list, or raise InvalidDice."""
    try:
        faces = list(dice)
    except TypeError:
        raise InvalidDice('Dice must be a sequence of five faces')
    if len(faces) != DICE_COUNT:
        raise InvalidDice(f'Must provide exactly {DICE_COUNT} dice')
    for face in faces:
        if isinstance(face, bool) or not isinstance(face, int) or face not in FACES:
            raise InvalidDice('Dice values must be integers between 1 and 6')
    return faces


def parse_category(category) -> Category:
    if isinstance(category, Category):
        return category
    try:
        return Category(str(category).upper())
    except ValueError:
        raise InvalidCategory(f'Unknown category: {category!r}')


def _has_run(faces, length):
    distinct = sorted(set(faces))
    run = 1
    for prev, cur in zip(distinct, distinct[1:]):
        run = run + 1 if cur == prev + 1 else 1
        if run >= length:
            return True
    return length <= 1


def _score(faces, category):
    counts = Counter(faces)
    total = sum(faces)

    if category.face is not None:
        return counts[category.face] * category.face
    if category is Category.THREE_OF_A_KIND:
        return total if max(counts.values()) >= 3 else 0
    if category is Category.FOUR_OF_A_KIND:
        return total if max(counts.values()) >= 4 else 0
    if category is Category.FULL_HOUSE:
        return FULL_HOUSE_SCORE if sorted(counts.values()) == [2, 3] else 0
    if category is Category.SMALL_STRAIGHT:
        return SMALL_STRAIGHT_SCORE if _has_run(faces, 4) else 0
    if category is Category.LARGE_STRAIGHT:
        # five distinct faces in one run: 1-5 or 2-6
        return LARGE_STRAIGHT_SCORE if _has_run(faces, 5) else 0
    if category is Category.YAHTZEE:
        return YAHTZEE_SCORE if len(counts) == 1 else 0
    if category is Category.CHANCE:
        return total
    raise InvalidCategory(f'Unknown category: {category!r}')


def score(dice: Sequence[int], category) -> int:
    """Score five dice in one category. Pure: same input, same output."""
    return _score(validate_dice(dice), parse_category(category))


def all_scores(dice: Sequence[int]) -> Dict[Category, int]:
    faces = validate_dice(dice)
    return {category: _score(faces, category) for category in Category}


def suggest_categories(dice: Sequence[int], exclude=()) -> List[Category]:
    """Categories that score above zero, best first.

    Ties keep card order. ``exclude`` drops categories already used.
    """
    scores = all_scores(dice)
    excluded = {parse_category(c) for c in exclude}
    order = {category: index for index, category in enumerate(Category)}
    candidates = [c for c, s in scores.items() if s > 0 and c not in excluded]
    return sorted(candidates, key=lambda c: (-scores[c], order[c]))


def best_category(dice: Sequence[int], exclude=()) -> Category:
    suggestions = suggest_categories(dice, exclude)
    if suggestions:
        return suggestions[0]
    excluded = {parse_category(c) for c in exclude}
    if Category.CHANCE not in excluded:
        return Category.CHANCE
    # every scoring box is used; burn the first free one for zero
    for category in Category:
        if category not in excluded:
            return category
    return Category.CHANCE


def is_yahtzee(dice: Sequence[int]) -> bool:
    return score(dice, Category.YAHTZEE) > 0
