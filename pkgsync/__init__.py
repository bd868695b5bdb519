"""pkgsync — 按已发布包版本定位源码提交并检出代码仓"""

__version__ = "0.1.0"
