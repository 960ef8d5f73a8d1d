"""
内存管理服务

记录进程内存使用，在加载前检查可用内存，释放后回收内存。
"""

import gc
import logging
import os
from typing import Any, Dict

import psutil


logger = logging.getLogger(__name__)


class MemoryManager:
    """内存管理器"""

    def __init__(self):
        """初始化内存管理器"""
        self.process = psutil.Process()

    def get_memory_usage(self) -> Dict[str, Any]:
        """获取当前内存使用情况"""
        memory_info = self.process.memory_info()
        return {
            "rss": memory_info.rss,  # 物理内存
            "vms": memory_info.vms,  # 虚拟内存
            "percent": self.process.memory_percent(),
            "available": psutil.virtual_memory().available
        }

    def force_cleanup(self) -> None:
        """强制清理内存"""
        gc.collect()

    def check_memory_availability(self, required_mb: float) -> bool:
        """检查是否有足够的可用内存"""
        available_mb = psutil.virtual_memory().available / (1024 * 1024)
        return available_mb > required_mb

    def warn_if_insufficient(self, model_path: str) -> bool:
        """
        按模型文件大小检查可用内存，不足时只记录警告

        Args:
            model_path: 本地模型文件路径

        Returns:
            bool: 内存是否充足（文件不存在时视为充足）
        """
        try:
            file_size_mb = os.path.getsize(model_path) / (1024 * 1024)
        except OSError:
            return True

        if self.check_memory_availability(file_size_mb):
            return True

        available_mb = psutil.virtual_memory().available / (1024 * 1024)
        logger.warning(
            f"可用内存 {available_mb:.0f}MB 小于模型文件大小 {file_size_mb:.0f}MB，加载可能失败"
        )
        return False
