def main() -> None:
    """パッケージエントリポイント。cli.main() に委譲する。

    pyproject.toml の [project.scripts] は shinsa.cli:main を直接参照するため、
    この関数はプログラムから shinsa.main() として呼び出す場合に使う。
    """
    from shinsa.cli import main as cli_main

    cli_main()
