import pytest

from ly_bdd.source import FeatureNotFound, FeatureSourceError, FileSystemSource, MappingSource


@pytest.mark.asyncio
async def test_file_system_source(tmp_path):
    (tmp_path / "b").mkdir()
    (tmp_path / "b" / "two.feature").write_text("Feature: Two\n", encoding="utf8")
    (tmp_path / "a.feature").write_text("", encoding="utf8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf8")
    source = FileSystemSource()
    root = tmp_path.as_posix()

    assert await source.list(root) == [f"{root}/a.feature", f"{root}/b/two.feature"]
    assert await source.list(f"{root}/a.feature") == [f"{root}/a.feature"]
    assert await source.list(f"{root}/missing") == []
    # Empty content is not the same as a missing file.
    assert await source.read(f"{root}/a.feature") == ""
    assert await source.read(f"{root}/b/two.feature") == "Feature: Two\n"
    with pytest.raises(FeatureNotFound):
        await source.read(f"{root}/missing.feature")
    assert await source.exists(f"{root}/a.feature")
    assert not await source.exists(f"{root}/missing.feature")


@pytest.mark.asyncio
async def test_mapping_source():
    source = MappingSource(
        {
            "features/z.feature": "Feature: Z",
            "features/a/b.feature": "Feature: B",
            "featuresque/c.feature": "Feature: C",
            "other/d.feature": "Feature: D",
        }
    )
    assert await source.list("features") == ["features/a/b.feature", "features/z.feature"]
    assert await source.list("features/z.feature") == ["features/z.feature"]
    assert await source.list("features/none.feature") == []
    assert await source.list("") == [
        "features/a/b.feature",
        "features/z.feature",
        "featuresque/c.feature",
        "other/d.feature",
    ]
    assert await source.read("other/d.feature") == "Feature: D"
    with pytest.raises(FeatureNotFound, match="Available: features/z.feature"):
        await source.read("missing.feature")
    assert await source.exists("other/d.feature")
    assert not await source.exists("other")


@pytest.mark.asyncio
async def test_loader_source():
    files = {"features/a.feature": "Feature: A"}

    async def loader(path):
        try:
            return files[path]
        except KeyError:
            raise FeatureNotFound(path) from None

    async def lister(path):
        return sorted(files)

    source = MappingSource.from_loader(loader, lister=lister)
    assert await source.read("features/a.feature") == "Feature: A"
    assert await source.list("features") == ["features/a.feature"]
    assert await source.exists("features/a.feature")
    assert not await source.exists("features/b.feature")

    without_lister = MappingSource.from_loader(loader)
    assert await without_lister.list("features/a.feature") == ["features/a.feature"]
    with pytest.raises(FeatureSourceError):
        await without_lister.list("features")


def test_mapping_source_needs_content():
    with pytest.raises(ValueError):
        MappingSource()
