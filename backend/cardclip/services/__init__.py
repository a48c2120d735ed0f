from cardclip.services.asset_fetcher import AssetFetcher
from cardclip.services.card_pipeline import CardPipeline
from cardclip.services.story_pipeline import StoryPipeline
from cardclip.services.video_assembler import FfmpegEncoder, VideoAssembler

__all__ = [
    "AssetFetcher",
    "CardPipeline",
    "FfmpegEncoder",
    "StoryPipeline",
    "VideoAssembler",
]
