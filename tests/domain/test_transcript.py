from desktop_dictate.domain.protocol import RecognitionToken
from desktop_dictate.domain.transcript import TranscriptDiffer, is_control_token


def final(text: str) -> RecognitionToken:
    return RecognitionToken(text=text, is_final=True)


def tentative(text: str) -> RecognitionToken:
    return RecognitionToken(text=text, is_final=False)


class TestControlTokens:
    def test_endpoint_marker(self):
        assert is_control_token("<end>")

    def test_marker_with_whitespace(self):
        assert is_control_token("  <fin> ")

    def test_plain_word(self):
        assert not is_control_token("hello")

    def test_angle_bracket_inside_word(self):
        assert not is_control_token("a<b>")


class TestTranscriptDiffer:
    def test_first_final_text_is_delta(self):
        differ = TranscriptDiffer()
        update = differ.apply([final("Hello")])
        assert update.delta == "Hello"
        assert update.preview == "Hello"

    def test_hello_world_sequence(self):
        differ = TranscriptDiffer()
        deltas = [
            differ.apply([tentative("Hel")]).delta,
            differ.apply([final("Hello")]).delta,
            differ.apply([final(" world")]).delta,
        ]
        assert deltas == ["", "Hello", " world"]
        assert differ.accumulated_text == "Hello world"

    def test_incremental_final_responses(self):
        differ = TranscriptDiffer()
        deltas = [
            differ.apply([final("Hello")]).delta,
            differ.apply([final("Hello"), final(" world")]).delta,
            differ.apply([final(" world"), final("<end>")]).delta,
        ]
        assert deltas == ["Hello", " world", " world"]
        assert differ.accumulated_text == "Hello world world"
        assert differ.finalized_text == " world"

    def test_tentative_tokens_only_in_preview(self):
        differ = TranscriptDiffer()
        update = differ.apply([final("Good"), tentative(" mor"), tentative("ning")])
        assert update.delta == "Good"
        assert update.preview == "Good morning"
        assert differ.accumulated_text == "Good"

    def test_only_tentative_tokens(self):
        differ = TranscriptDiffer()
        update = differ.apply([tentative("maybe")])
        assert update.delta == ""
        assert update.preview == "maybe"
        assert differ.accumulated_text == ""

    def test_control_tokens_never_reach_output(self):
        differ = TranscriptDiffer()
        update = differ.apply([final("<end>"), tentative("<fin>")])
        assert update.delta == ""
        assert update.preview == ""

    def test_empty_tokens_ignored(self):
        differ = TranscriptDiffer()
        update = differ.apply([final(""), final("ok"), tentative("")])
        assert update.delta == "ok"

    def test_repeated_final_text_has_empty_delta(self):
        differ = TranscriptDiffer()
        differ.apply([final("same")])
        update = differ.apply([final("same"), tentative(" next")])
        assert update.delta == ""
        assert update.preview == "same next"
        assert differ.accumulated_text == "same"

    def test_non_extending_text_is_reported_whole(self):
        differ = TranscriptDiffer()
        differ.apply([final("Hello there")])
        update = differ.apply([final("Help")])
        assert update.delta == "Help"
        assert differ.finalized_text == "Help"
        assert differ.accumulated_text == "Hello thereHelp"

    def test_empty_final_text_resets_prefix(self):
        differ = TranscriptDiffer()
        differ.apply([final("one")])
        assert differ.apply([tentative(" two")]).delta == ""
        assert differ.finalized_text == ""
        assert differ.apply([final("one")]).delta == "one"

    def test_accumulated_text_is_concatenation_of_deltas(self):
        differ = TranscriptDiffer()
        batches = [
            [final("I")],
            [final("I"), final(" am")],
            [final(" here")],
            [tentative("...")],
            [final(" now")],
        ]
        deltas = [differ.apply(batch).delta for batch in batches]
        assert differ.accumulated_text == "".join(deltas)
