"""CLI 模块 - picobot 的命令行入口（Typer）。"""
