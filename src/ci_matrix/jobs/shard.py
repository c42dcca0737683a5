"""
Test list sharding and chunk file generation.

Splits a test corpus into chunks so one sequential WPT run can be spread
over independent parallel workers.

Test List Format:
    One test ID per line. Blank lines and lines starting with '#' are
    ignored.

    Example:
        /css/css-flexbox/align-items-001.html
        /dom/nodes/Node-cloneNode.html

Partitioning:
    The corpus is sorted and de-duplicated, then split into total_chunks
    contiguous runs whose sizes differ by at most one. Every test lands in
    exactly one chunk; with fewer tests than chunks the trailing chunks
    are empty.

Workflow:
    1. Partition:   ci-matrix shard split --tests tests.txt --chunks-dir chunks/ --total-chunks 20
    2. Inspect:     ci-matrix shard list --tests tests.txt --total-chunks 20 --this-chunk 3
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

import numpy as np


@dataclass(frozen=True)
class TestShard:
    """One slice of a test corpus: chunk chunk_index of total_chunks (1-indexed)."""
    total_chunks: int
    chunk_index: int

    __test__ = False  # not a pytest test class

    def __post_init__(self):
        if self.total_chunks < 1:
            raise ValueError(f"total_chunks must be >= 1, got {self.total_chunks}")
        if not 1 <= self.chunk_index <= self.total_chunks:
            raise ValueError(
                f"chunk_index must be in 1..{self.total_chunks}, got {self.chunk_index}"
            )

    @property
    def label(self) -> str:
        return f"{self.chunk_index:02d}"

    @property
    def chunk_filename(self) -> str:
        return f"chunk_{self.chunk_index:04d}_of_{self.total_chunks:04d}.txt"


def iter_shards(total_chunks: int) -> Iterator[TestShard]:
    """All shards of an N-way split, in chunk order."""
    for chunk_index in range(1, total_chunks + 1):
        yield TestShard(total_chunks=total_chunks, chunk_index=chunk_index)


def read_test_list(test_list_file: Union[str, Path]) -> List[str]:
    """
    Read test IDs from a file.

    Args:
        test_list_file: Path to test list file (one test per line)

    Returns:
        List of test IDs (stripped, non-empty, non-comment)
    """
    test_list_file = Path(test_list_file)
    if not test_list_file.exists():
        raise FileNotFoundError(f"Test list not found: {test_list_file}")

    tests = []
    with open(test_list_file, 'r') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#'):
                tests.append(line)
    return tests


def write_test_list(tests: Iterable[str], output_file: Union[str, Path]) -> Path:
    """Write test IDs to a file, one per line."""
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    tests = list(tests)
    with open(output_file, 'w') as f:
        for test in tests:
            f.write(test + '\n')

    print(f"Wrote {len(tests)} tests: {output_file}")
    return output_file


def partition_tests(test_ids: Iterable[str], total_chunks: int) -> List[List[str]]:
    """
    Partition a test corpus into total_chunks disjoint chunks.

    Args:
        test_ids: Test IDs (duplicates are collapsed)
        total_chunks: Number of chunks (>= 1)

    Returns:
        List of total_chunks lists; element i holds the tests of chunk i+1

    Example:
        >>> partition_tests(['a', 'b', 'c', 'd', 'e'], 2)
        [['a', 'b', 'c'], ['d', 'e']]
    """
    if total_chunks < 1:
        raise ValueError(f"total_chunks must be >= 1, got {total_chunks}")

    corpus = sorted(set(test_ids))
    if not corpus:
        return [[] for _ in range(total_chunks)]

    chunks = np.array_split(np.array(corpus, dtype=object), total_chunks)
    return [[str(test) for test in chunk] for chunk in chunks]


def select_chunk(test_ids: Iterable[str], shard: TestShard) -> List[str]:
    """Tests assigned to one shard."""
    return partition_tests(test_ids, shard.total_chunks)[shard.chunk_index - 1]


def create_chunk_files(
    test_ids: Iterable[str],
    output_dir: Union[str, Path],
    total_chunks: int = 20,
) -> Tuple[List[Path], Path]:
    """
    Partition tests and write one file per chunk.

    Args:
        test_ids: Test IDs to partition
        output_dir: Directory to save chunk files
        total_chunks: Number of chunks

    Returns:
        Tuple of (list of chunk file paths, summary file path)
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    chunks = partition_tests(test_ids, total_chunks)
    total_tests = sum(len(chunk) for chunk in chunks)

    print(f"Creating {total_chunks} chunk(s) from {total_tests} tests")
    print(f"Output directory: {output_dir}")

    chunk_files = []
    for shard, chunk_tests in zip(iter_shards(total_chunks), chunks):
        chunk_path = output_dir / shard.chunk_filename
        with open(chunk_path, 'w') as f:
            for test in chunk_tests:
                f.write(test + '\n')
        chunk_files.append(chunk_path)
        print(f"Created {shard.chunk_filename} ({len(chunk_tests)} tests)")

    summary_path = output_dir / "chunks_summary.txt"
    with open(summary_path, 'w') as f:
        f.write(f"Total tests: {total_tests}\n")
        f.write(f"Number of chunks: {total_chunks}\n")
        f.write(f"Created: {datetime.now().isoformat()}\n")
        f.write("\nChunk files:\n")
        start = 0
        for shard, chunk_tests in zip(iter_shards(total_chunks), chunks):
            if chunk_tests:
                f.write(f"{shard.chunk_filename}: tests {start + 1}-{start + len(chunk_tests)}\n")
            else:
                f.write(f"{shard.chunk_filename}: no tests\n")
            start += len(chunk_tests)

    print(f"\nCreated summary: {summary_path}")

    return chunk_files, summary_path


def count_chunks(chunks_dir: Union[str, Path]) -> int:
    """Number of chunk files in a directory."""
    return len(list(Path(chunks_dir).glob("chunk_*_of_*.txt")))


def get_chunk_file(chunks_dir: Union[str, Path], chunk_index: int) -> Optional[Path]:
    """
    Get the chunk file for a given chunk index.

    Args:
        chunks_dir: Directory containing chunk files
        chunk_index: Chunk index (1-indexed)

    Returns:
        Path to chunk file, or None if not found
    """
    matches = sorted(Path(chunks_dir).glob(f"chunk_{chunk_index:04d}_of_*.txt"))
    return matches[0] if matches else None
