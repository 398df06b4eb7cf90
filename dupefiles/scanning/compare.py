"""
Binary comparison of two files.

compare_full is exact. compare_sampled only looks at a random subset of the
bytes and can therefore call two different files identical; it is meant for
very large files where reading everything twice is too slow.
"""
import os
import random
from pathlib import Path
from typing import Optional, Union

from .. import config

PathLike = Union[str, Path]

def compare_full(path_a: PathLike, path_b: PathLike, chunk_size: int = config.COMPARE_CHUNK_SIZE) -> bool:
    """
    Streams both files chunk by chunk. Any differing chunk, or one file
    ending before the other, means not identical. Raises OSError.
    """
    with open(path_a, 'rb') as fa, open(path_b, 'rb') as fb:
        while True:
            chunk_a = fa.read(chunk_size)
            chunk_b = fb.read(chunk_size)
            if chunk_a != chunk_b:
                return False
            if not chunk_a:
                return True

def compare_sampled(path_a: PathLike,
                    path_b: PathLike,
                    sample_size: int,
                    mode: str = "window",
                    rng: Optional[random.Random] = None) -> bool:
    """
    Compares `sample_size` bytes of two equally sized files.

    mode="window":  one random contiguous window of sample_size bytes.
    mode="offsets": sample_size independent random byte positions.

    Falls back to compare_full when sampling is off or the file is no larger
    than the sample. Raises OSError.
    """
    size = os.stat(path_a).st_size
    if sample_size <= 0 or size <= sample_size:
        return compare_full(path_a, path_b)

    rng = rng or random.Random()

    with open(path_a, 'rb') as fa, open(path_b, 'rb') as fb:
        if mode == "window":
            offset = rng.randint(0, size - sample_size)
            fa.seek(offset)
            fb.seek(offset)
            return fa.read(sample_size) == fb.read(sample_size)

        if mode == "offsets":
            # Sorted so both files are read front to back
            for offset in sorted(rng.randrange(size) for _ in range(sample_size)):
                fa.seek(offset)
                fb.seek(offset)
                if fa.read(1) != fb.read(1):
                    return False
            return True

    raise ValueError(f"Unknown sample mode: {mode}")
