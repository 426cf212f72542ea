from digest.models import SourceSpec

SOURCES = [
    SourceSpec(
        url="https://pqhh.org/media-center/",
        container_selector=".fl-post-text",
        link_selector=".fl-post-title > a",
        title_selector=".fl-post-title",
        date_selector=".fl-post-meta",
    ),
    SourceSpec(
        url="https://www.mcknightshomecare.com/home/news/",
        container_selector=".article-teaser",
        link_selector="a",
        title_selector=".card-title",
        description_selector=".card-text",
        date_selector=".post-date",
        require_date=True,
    ),
    SourceSpec(
        url="https://valleyhca.com/our-blog/",
        container_selector="article",
        link_selector="a",
        title_selector=".tpn-postheader",
        description_selector="p",
        date_selector=".entry-date",
    ),
    SourceSpec(
        url="https://www.medicalnewstoday.com/news",
        container_selector=".css-kbq0t",
        link_selector="a",
        title_selector="h2",
        description_selector="p",
        date_selector=".css-3be604",
    ),
    SourceSpec(
        url="https://dailycaring.com/",
        container_selector="article",
        link_selector="a",
        title_selector="h2",
        description_selector="p",
    ),
    SourceSpec(
        url="https://www.casacompanionhomecare.com/blog/",
        container_selector=".fl-post-grid-post",
        link_selector="a",
        title_selector="h2",
        description_selector="p",
    ),
]
