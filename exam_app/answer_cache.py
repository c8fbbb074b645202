from .client_store import scoped_key
from .randomizer import translate_answers_to_original


class AnswerCache:
    """
    Autosave/restore of in-progress answers for one token.

    The cache keeps widget state: choice answers are indices into the order the
    candidate sees. Because that order is a pure function of the token, the
    saved indices line up with the re-rendered test after any reload, and
    ``original_answers`` maps them back to authored indices for submission.
    """

    def __init__(self, store, token, choice_maps):
        self.store = store
        self.token = token
        self.choice_maps = choice_maps or {}

    @property
    def key(self):
        return scoped_key(self.token, "answers")

    def save(self, widget_state):
        """Called on every answer-affecting input event."""
        clean = {k: v for k, v in (widget_state or {}).items() if v is not None}
        self.store.set(self.key, clean)

    def restore_widget_state(self):
        data = self.store.get(self.key) or {}
        return dict(data) if isinstance(data, dict) else {}

    def original_answers(self):
        return translate_answers_to_original(self.restore_widget_state(), self.choice_maps)

    def clear(self):
        self.store.remove(self.key)

    def mark_submitted(self):
        self.store.set(scoped_key(self.token, "submitted"), "1")

    def is_submitted(self):
        return self.store.get(scoped_key(self.token, "submitted")) == "1"
