from app.scraper.pipeline import main

if __name__ == "__main__":
    # Subcommands: crawl, geocode, all, replay. Data lands under ASBESTOS_DATA_DIR.
    raise SystemExit(main())
