"""
Example script demonstrating sfxchain audio chains.

Place ``part1.mp3``, ``part2.mp3`` and ``glitches.mp3`` next to this script
(or pass a directory as the first argument) and run it.
"""

import sys
from pathlib import Path

from sfxchain import AudioChain, ChainConfig, SfxChainError


def _inputs_exist(*paths: Path) -> bool:
    missing = [p for p in paths if not p.exists()]
    if missing:
        print(f"Note: missing input(s): {', '.join(str(p) for p in missing)}")
        print("Skipping execution - this is just an example structure.")
        return False
    return True


def example_concat_and_mix(base: Path, out_dir: Path):
    """Concatenate two parts, then mix a glitch track over their length."""
    print("=" * 60)
    print("Example 1: Concatenate and mix")
    print("=" * 60)

    part1, part2, glitches = base / "part1.mp3", base / "part2.mp3", base / "glitches.mp3"
    if not _inputs_exist(part1, part2, glitches):
        return

    with AudioChain() as chain:
        out = (
            chain.add(part1)
            .add(part2)
            .mix(glitches, duration="first")
            .save(out_dir / "add_add_mix.mp3")
        )
    print(f"Exported: {out}")


def example_complex(base: Path, out_dir: Path):
    """Silence, mixing and filters in one chain."""
    print("\n" + "=" * 60)
    print("Example 2: Silence, telephone effect and normalization")
    print("=" * 60)

    part1, part2, glitches = base / "part1.mp3", base / "part2.mp3", base / "glitches.mp3"
    if not _inputs_exist(part1, part2, glitches):
        return

    with AudioChain() as chain:
        out = (
            chain.add(part1)
            .silence(2000)
            .add(part2)
            .mix(glitches, duration="first")
            .filter("telephone")
            .filter("normalize", tp=-3)
            .save(out_dir / "complex.mp3")
        )
    print(f"Exported: {out}")
    print(f"Step timings: {chain.step_timings}")


def example_tempo_and_trim(base: Path, out_dir: Path):
    """Slow a clip down by 25%, then trim its silence with padding."""
    print("\n" + "=" * 60)
    print("Example 3: Tempo and trim")
    print("=" * 60)

    part1 = base / "part1.mp3"
    if not _inputs_exist(part1):
        return

    with AudioChain() as chain:
        slow = chain.add(part1).filter("tempo", x=0.75).save(out_dir / "part1_slow.mp3")
        chain.reset()
        trimmed = chain.add(part1).trim(paddingStart=100, paddingEnd=100).save(
            out_dir / "part1_trimmed_padded.mp3"
        )
    print(f"Exported: {slow}")
    print(f"Exported: {trimmed}")


def example_opus_export(base: Path, out_dir: Path):
    """Export to Ogg/Opus with explicit encoder options."""
    print("\n" + "=" * 60)
    print("Example 4: Opus export with output options")
    print("=" * 60)

    part1 = base / "part1.mp3"
    if not _inputs_exist(part1):
        return

    with AudioChain() as chain:
        out = chain.add(part1).save(
            out_dir / "output.ogg",
            {
                "c:a": "libopus",
                "b:a": "32k",
                "ar": "48000",
                "ac": "1",
                "vbr": "off",
                "compression_level": "10",
                "frame_duration": "20",
                "application": "voip",
            },
        )
    print(f"Exported: {out}")


def example_truncation_check(base: Path):
    """Check several clips for abrupt endings, reusing one chain."""
    print("\n" + "=" * 60)
    print("Example 5: Truncation detection")
    print("=" * 60)

    files = sorted(base.glob("*.mp3"))
    if not files:
        print(f"Note: no .mp3 files in {base}")
        return

    with AudioChain(ChainConfig(show_progress=False)) as chain:
        for path in files:
            try:
                report = chain.add(path).is_truncated()
            except SfxChainError as e:
                print(f"Error analyzing {path.name}: {e}")
                continue
            print(f"File: {path.name}")
            print(f"  Truncated:     {report.truncated}")
            print(f"  Tail RMS:      {report.tail_rms_db} dB")
            print(f"  Tail Peak:     {report.tail_peak_db} dB")
            print(f"  Duration:      {report.duration}s")
            print(f"  Threshold:     {report.threshold} dB")
            print(f"  Tail analyzed: {report.tail_duration_ms} ms")


def main():
    base = Path(sys.argv[1]) if len(sys.argv) > 1 else Path(__file__).parent
    out_dir = Path("output/examples")

    example_concat_and_mix(base, out_dir)
    example_complex(base, out_dir)
    example_tempo_and_trim(base, out_dir)
    example_opus_export(base, out_dir)
    example_truncation_check(base)


if __name__ == "__main__":
    main()
