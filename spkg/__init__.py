"""spkg - 科学计算发行版的单包安装器

按固定状态机把一个包引用（路径 / 名称 / 名称-版本 / URL）
安装到发行版前缀目录，并写入安装记录。
"""

__version__ = "0.3.0"
