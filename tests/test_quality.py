import pytest

from quality import filter_quality, is_low_quality_title, is_valid_url


@pytest.mark.parametrize(
    "url, valid",
    [
        ("https://example.com/a", True),
        ("http://example.com", True),
        ("ftp://example.com/a", False),
        ("example.com/a", False),
        ("", False),
    ],
)
def test_is_valid_url(url, valid):
    assert is_valid_url(url) is valid


@pytest.mark.parametrize(
    "title, low",
    [
        ("   ", True),
        ("123456", True),
        ("这是一条测试新闻", True),
        ("Test release notes", True),
        ("品牌推广活动开启", True),
        ("短标题", True),
        ("正常的新闻标题内容", False),
    ],
)
def test_is_low_quality_title(title, low):
    assert is_low_quality_title(title) is low


def test_filter_quality(make_item):
    good = make_item("正常的新闻标题内容", score=50)
    items = [
        good,
        make_item("四个字的", score=90),
        make_item("正常的新闻标题但无链接", url="", score=90),
        make_item("正常的新闻标题但分数低", score=20),
        make_item("这是一条广告新闻内容", score=90),
    ]
    assert filter_quality(items) == [good]


def test_filter_quality_custom_min_score(make_item):
    item = make_item("正常的新闻标题内容", score=40)
    assert filter_quality([item], min_score=50) == []
    assert filter_quality([item], min_score=40) == [item]
