"""
Jam Buddy - a practice partner that plays chord progressions over MIDI.

Give it a progression and it plays the chords, a bass line, an optional
harmony voice and a drum groove on any MIDI output: a hardware synth, a drum
machine or a software instrument.  Everything is pure MIDI; there is no
audio engine in the package.

What it does:

- **Chord theory.** Parses chord symbols (``C``, ``Am7``, ``F#m7b5``,
  ``G13``, ``Dsus4``...) into interval sets, names chords as roman numerals
  in a key, and transposes twelve preset progressions to any key.
- **Voice leading.** Each chord is voiced close to the previous one by
  choosing among inversions and octave shifts, with optional spread
  voicings and a touch of random variation.
- **Playback.** A 24 PPQN transport drives bar-synchronised chord, bass,
  harmony and drum tracks, with an arpeggiator and seven built-in drum
  grooves plus your own.
- **Training mode.** Count-in, play the progression a few times, reset,
  repeat - an endless practice loop until you stop it.
- **MIDI export.** Byte-exact two-track Standard MIDI Files.
- **Jam files.** Save and load every setting as JSON.
- **Remote control.** An optional OSC bridge for a separate UI.

Minimal example:

```python
import jambuddy

session = jambuddy.JamSession(output_device="IAC Driver Bus 1", bpm=96)
session.set_progression(["Am", "F", "C", "G"])
session.set_drum_pattern("Funk")
session.run("train")
```

Package-level exports: ``JamSession``, ``JamState``, ``TrainingState``,
``resolve``, ``roman_numeral``, ``voice_progression``, ``encode_midi``.
"""

import jambuddy.chords
import jambuddy.harmony
import jambuddy.jam_state
import jambuddy.midi_file
import jambuddy.session
import jambuddy.training
import jambuddy.voicings


JamSession = jambuddy.session.JamSession
JamState = jambuddy.jam_state.JamState
TrainingState = jambuddy.training.TrainingState
resolve = jambuddy.chords.resolve
roman_numeral = jambuddy.harmony.roman_numeral
voice_progression = jambuddy.voicings.voice_progression
encode_midi = jambuddy.midi_file.encode
