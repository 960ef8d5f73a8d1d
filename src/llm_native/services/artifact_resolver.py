"""
模型文件解析服务

把模型文件定位符解析为本地路径。hf: 定位符和HuggingFace的 https 下载地址
通过HuggingFace Hub下载并缓存，本地路径和 file:// 地址原样使用。
"""

import asyncio
import logging
import os
from typing import NamedTuple, Optional, Tuple
from urllib.parse import unquote, urlparse

from huggingface_hub import HfApi, hf_hub_download
from huggingface_hub.errors import (
    EntryNotFoundError,
    GatedRepoError,
    HfHubHTTPError,
    LocalEntryNotFoundError,
    RepositoryNotFoundError,
)

from .model_resolver import HF_URI_SCHEME
from ..core.exceptions import (
    ArtifactAuthenticationError,
    ArtifactResolutionError,
    ModelNotFoundError,
)


logger = logging.getLogger(__name__)

# 按Hub下载的HuggingFace域名
HF_HOSTS = ("huggingface.co", "hf.co")


def is_hf_uri(uri: str) -> bool:
    """检查是否为 hf: 定位符"""
    return uri.startswith(HF_URI_SCHEME)


def parse_hf_uri(uri: str) -> Tuple[str, str]:
    """
    解析 hf:<owner>/<repo>/<file> 定位符

    Returns:
        (repo_id, filename)，filename 可以包含子目录

    Raises:
        ArtifactResolutionError: 定位符格式错误
    """
    parts = uri[len(HF_URI_SCHEME):].strip("/").split("/")
    if len(parts) < 3 or not all(parts):
        raise ArtifactResolutionError(
            f"无效的模型定位符: {uri}，期望格式 hf:<owner>/<repo>/<file>"
        )
    return "/".join(parts[:2]), "/".join(parts[2:])


def _translate_hub_error(error: Exception, uri: str) -> ArtifactResolutionError:
    """把HuggingFace Hub异常转换为本项目的异常"""
    if isinstance(error, LocalEntryNotFoundError):
        return ArtifactResolutionError(f"本地缓存中没有模型文件且无法下载: {uri}")
    if isinstance(error, GatedRepoError):
        return ArtifactAuthenticationError(
            f"模型仓库需要授权访问: {uri}。请设置 HF_TOKEN 或传入 hugging_face_token"
        )
    if isinstance(error, RepositoryNotFoundError):
        return ModelNotFoundError(f"模型仓库不存在或无访问权限: {uri}")
    if isinstance(error, EntryNotFoundError):
        return ModelNotFoundError(f"模型文件不存在: {uri}")
    if isinstance(error, HfHubHTTPError):
        status = getattr(getattr(error, 'response', None), 'status_code', None)
        if status in (401, 403):
            return ArtifactAuthenticationError(f"访问模型文件认证失败 (HTTP {status}): {uri}")
        return ArtifactResolutionError(f"下载模型文件失败: {uri}: {error}")
    return ArtifactResolutionError(f"解析模型文件失败: {uri}: {error}")


def parse_hf_url(url: str) -> Tuple[str, str, str]:
    """
    解析 https://huggingface.co/<owner>/<repo>/resolve/<revision>/<file> 下载地址

    Returns:
        (repo_id, filename, revision)

    Raises:
        ArtifactResolutionError: 不是HuggingFace文件地址
    """
    parsed = urlparse(url)
    parts = unquote(parsed.path).strip("/").split("/")
    if (
        parsed.hostname not in HF_HOSTS
        or len(parts) < 5
        or parts[2] not in ("resolve", "blob")
        or not all(parts)
    ):
        raise ArtifactResolutionError(
            f"无法解析的HuggingFace地址: {url}，"
            f"期望格式 https://huggingface.co/<owner>/<repo>/resolve/<revision>/<file>"
        )
    return "/".join(parts[:2]), "/".join(parts[4:]), parts[3]


class HubFile(NamedTuple):
    """Hub上的模型文件"""
    repo_id: str
    filename: str
    revision: Optional[str] = None


def _parse_locator(uri: str) -> Tuple[Optional[HubFile], Optional[str]]:
    """
    区分Hub文件和本地路径

    Returns:
        (hub_file, local_path)，两者恰有一个不为None

    Raises:
        ArtifactResolutionError: 定位符格式错误或协议不支持
    """
    if is_hf_uri(uri):
        return HubFile(*parse_hf_uri(uri)), None

    if "://" not in uri:
        return None, os.path.expanduser(uri)

    scheme = urlparse(uri).scheme.lower()
    if scheme == "file":
        return None, unquote(urlparse(uri).path)
    if scheme in ("http", "https"):
        return HubFile(*parse_hf_url(uri)), None

    raise ArtifactResolutionError(f"不支持的模型定位符协议 '{scheme}': {uri}")


class ArtifactResolver:
    """模型文件解析器"""

    def __init__(self, cache_dir: Optional[str] = None):
        """
        初始化模型文件解析器

        Args:
            cache_dir: Hub缓存目录，None时使用huggingface_hub默认目录
        """
        self.cache_dir = cache_dir

    async def resolve(self, uri: str, token: Optional[str] = None) -> str:
        """
        解析模型文件定位符，必要时下载

        Args:
            uri: hf: 定位符、HuggingFace下载地址、file:// 地址或本地路径
            token: HuggingFace访问令牌

        Returns:
            str: 本地文件路径

        Raises:
            ArtifactResolutionError: 定位符无效、下载或认证失败
        """
        hub_file, local_path = _parse_locator(uri)
        if hub_file is None:
            return local_path

        logger.info(f"从HuggingFace Hub获取模型文件: {hub_file.repo_id}/{hub_file.filename}")

        try:
            path = await asyncio.to_thread(
                hf_hub_download,
                repo_id=hub_file.repo_id,
                filename=hub_file.filename,
                revision=hub_file.revision,
                token=token,
                cache_dir=self.cache_dir,
            )
        except Exception as e:
            translated = _translate_hub_error(e, uri)
            logger.error(str(translated))
            raise translated from e

        logger.info(f"模型文件已就绪: {path}")
        return path

    async def artifact_exists(self, uri: str, token: Optional[str] = None) -> bool:
        """
        检查模型文件是否存在，不下载

        Args:
            uri: 同 resolve()
            token: HuggingFace访问令牌

        Returns:
            bool: 是否存在
        """
        hub_file, local_path = _parse_locator(uri)
        if hub_file is None:
            return os.path.exists(local_path)

        api = HfApi(token=token)
        try:
            return await asyncio.to_thread(
                api.file_exists, hub_file.repo_id, hub_file.filename, revision=hub_file.revision
            )
        except Exception as e:
            raise _translate_hub_error(e, uri) from e
