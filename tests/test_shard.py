"""Tests for test list sharding."""

import pytest

from ci_matrix.jobs.shard import (
    TestShard,
    count_chunks,
    create_chunk_files,
    get_chunk_file,
    iter_shards,
    partition_tests,
    read_test_list,
    select_chunk,
    write_test_list,
)


def _corpus(n):
    return [f"/dom/test-{i:03d}.html" for i in range(n)]


class TestPartition:
    """Every test lands in exactly one chunk."""

    @pytest.mark.parametrize("n_tests", [0, 1, 7, 20, 57, 200])
    @pytest.mark.parametrize("total_chunks", [1, 3, 20])
    def test_partition_covers_corpus_once(self, n_tests, total_chunks):
        corpus = _corpus(n_tests)
        chunks = partition_tests(corpus, total_chunks)

        assert len(chunks) == total_chunks
        flattened = [test for chunk in chunks for test in chunk]
        assert sorted(flattened) == sorted(corpus)
        assert len(flattened) == len(set(flattened))

    def test_chunk_sizes_are_balanced(self):
        sizes = [len(chunk) for chunk in partition_tests(_corpus(57), 20)]
        assert max(sizes) - min(sizes) <= 1

    def test_fewer_tests_than_chunks(self):
        chunks = partition_tests(['a', 'b'], 4)
        assert chunks == [['a'], ['b'], [], []]

    def test_duplicates_collapsed_and_order_independent(self):
        assert partition_tests(['c', 'a', 'b', 'a'], 2) == partition_tests(['a', 'b', 'c'], 2)

    def test_returns_plain_strings(self):
        chunks = partition_tests(['a', 'b', 'c'], 2)
        assert all(type(test) is str for chunk in chunks for test in chunk)

    def test_invalid_chunk_count(self):
        with pytest.raises(ValueError):
            partition_tests(['a'], 0)

    def test_select_chunk(self):
        corpus = ['a', 'b', 'c', 'd', 'e']
        assert select_chunk(corpus, TestShard(2, 1)) == ['a', 'b', 'c']
        assert select_chunk(corpus, TestShard(2, 2)) == ['d', 'e']


class TestTestShard:
    """Shard coordinates."""

    @pytest.mark.parametrize("total,index", [(0, 1), (20, 0), (20, 21), (3, -1)])
    def test_invalid(self, total, index):
        with pytest.raises(ValueError):
            TestShard(total_chunks=total, chunk_index=index)

    def test_labels(self):
        shard = TestShard(total_chunks=20, chunk_index=7)
        assert shard.label == '07'
        assert shard.chunk_filename == 'chunk_0007_of_0020.txt'

    def test_iter_shards(self):
        shards = list(iter_shards(3))
        assert [s.chunk_index for s in shards] == [1, 2, 3]
        assert all(s.total_chunks == 3 for s in shards)


class TestChunkFiles:
    """Writing and reading test lists."""

    def test_read_test_list_skips_comments(self, tmp_path):
        test_file = tmp_path / "tests.txt"
        test_file.write_text("# WPT tests\n/a.html\n\n  /b.html  \n#/c.html\n")

        assert read_test_list(test_file) == ['/a.html', '/b.html']

    def test_read_test_list_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_test_list(tmp_path / "missing.txt")

    def test_write_then_read(self, tmp_path):
        path = write_test_list(['/a.html', '/b.html'], tmp_path / "sub" / "tests.txt")
        assert read_test_list(path) == ['/a.html', '/b.html']

    def test_create_chunk_files(self, tmp_path, capsys):
        chunks_dir = tmp_path / "chunks"
        chunk_files, summary = create_chunk_files(_corpus(10), chunks_dir, total_chunks=4)

        assert len(chunk_files) == 4
        assert count_chunks(chunks_dir) == 4
        assert read_test_list(chunk_files[0]) == _corpus(10)[:3]
        assert get_chunk_file(chunks_dir, 4) == chunks_dir / "chunk_0004_of_0004.txt"
        assert get_chunk_file(chunks_dir, 5) is None
        assert "Total tests: 10" in summary.read_text()
        assert "Creating 4 chunk(s) from 10 tests" in capsys.readouterr().out

    def test_summary_marks_empty_chunks(self, tmp_path):
        _, summary = create_chunk_files(['/a.html', '/b.html'], tmp_path, total_chunks=3)
        lines = summary.read_text().splitlines()

        assert "chunk_0001_of_0003.txt: tests 1-1" in lines
        assert "chunk_0002_of_0003.txt: tests 2-2" in lines
        assert "chunk_0003_of_0003.txt: no tests" in lines
