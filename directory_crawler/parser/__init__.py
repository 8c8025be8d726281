"""directory_crawler.parser: разбор HTML страниц."""
