"""Speech streaming with barge-in cancellation."""

from everycall.voice.cancellation import UtteranceCancellationRegistry
from everycall.voice.synthesis import SpeechStreamingService, SynthesisStream

__all__ = ["SpeechStreamingService", "SynthesisStream", "UtteranceCancellationRegistry"]
