from slimage.cli import main

raise SystemExit(main())
